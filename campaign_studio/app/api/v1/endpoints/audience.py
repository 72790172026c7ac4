from typing import Annotated

from fastapi import APIRouter, Body, Depends

from ....core.audience_estimator import AudienceEstimate
from ....core.services import Services
from ....core.session import StaticSessionProvider
from ..dependencies import get_services, get_sessions
from .campaigns.models.segment import SegmentCriteria

router = APIRouter()


@router.post(
    '/estimate',
    description='Estimate how many subscribers match a segment',
    response_description='count is null when the criteria are empty or the lookup failed; see error',
)
async def estimate_audience(
    criteria: Annotated[SegmentCriteria, Body(media_type='application/json')],
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> AudienceEstimate:
    return await services.estimator(sessions).estimate(criteria)
