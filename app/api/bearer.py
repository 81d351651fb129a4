from fastapi.security import HTTPBearer

# HTTP Bearer authentication schemes of the two applications
bearer_executive = HTTPBearer(scheme_name="Executive HTTPBearer")
bearer_operator = HTTPBearer(scheme_name="Operator HTTPBearer")
