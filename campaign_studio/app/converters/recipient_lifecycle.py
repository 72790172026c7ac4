"""
Petri net model of one simulated recipient.

Places are lifecycle stages and a single token marks the current stage. Transitions are the only way to move the
token, so a stage can never be skipped or revisited:

    idle --dispatch--> sending --deliver--> sent --click--> clicked --convert--> converted
                          \\                   \\
                           fail_send            fail_delivered
                             \\                   \\
                              +------> failed <----+
"""

from snakes import ConstraintError
from snakes.data import Substitution
from snakes.nets import PetriNet, Place, Transition, Value

PLACES = ('idle', 'sending', 'sent', 'clicked', 'converted', 'failed')
TERMINAL_PLACES = frozenset({'converted', 'failed'})

# transition name -> (input place, output place)
TRANSITIONS: dict[str, tuple[str, str]] = {
    'dispatch': ('idle', 'sending'),
    'deliver': ('sending', 'sent'),
    'fail_send': ('sending', 'failed'),
    'click': ('sent', 'clicked'),
    'fail_delivered': ('sent', 'failed'),
    'convert': ('clicked', 'converted'),
}


class RecipientLifecycle:
    """Drives one recipient's token through the net.

    Example:
        >>> lifecycle = RecipientLifecycle('ana@example.com')
        >>> lifecycle.fire('dispatch')
        'sending'
    """

    def __init__(self, recipient: str) -> None:
        self.recipient = recipient
        self.net = self._build_net(recipient)

    @staticmethod
    def _build_net(recipient: str) -> PetriNet:
        net = PetriNet(f'Recipient_{recipient}')
        for name in PLACES:
            net.add_place(Place(name))
        for transition_name, (source, target) in TRANSITIONS.items():
            net.add_transition(Transition(transition_name))
            net.add_input(source, transition_name, Value(1))
            net.add_output(target, transition_name, Value(1))
        net.place('idle').add(1)
        return net

    @property
    def stage(self) -> str:
        for name in PLACES:
            if len(self.net.place(name).tokens) > 0:
                return name
        msg = f'recipient {self.recipient} has no marked stage'
        raise RuntimeError(msg)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_PLACES

    def enabled_transitions(self) -> list[str]:
        binding = Substitution()
        return [t.name for t in self.net.transition() if t.enabled(binding)]

    def fire(self, transition_name: str) -> str:
        """Fire a transition and return the new stage.

        Raises:
            ValueError: the transition does not exist or is not enabled from the current stage
        """
        if transition_name not in TRANSITIONS:
            msg = f"Transition '{transition_name}' does not exist in the recipient lifecycle"
            raise ValueError(msg)
        transition = self.net.transition(transition_name)
        binding = Substitution()
        if not transition.enabled(binding):
            msg = f"Transition '{transition_name}' is not enabled from stage '{self.stage}'"
            raise ValueError(msg)
        try:
            transition.fire(binding)
        except ConstraintError as err:
            msg = f"Transition '{transition_name}' could not fire"
            raise ValueError(msg) from err
        return self.stage
