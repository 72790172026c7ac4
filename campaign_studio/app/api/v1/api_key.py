from fastapi.security import APIKeyHeader

# a missing key reaches the routes as None; reads then fail closed and writes answer 401
api_key_header = APIKeyHeader(name='Authorization', auto_error=False)
