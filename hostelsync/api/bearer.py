from fastapi.security import HTTPBearer

# Bearer tokens are issued to accounts by the identity service
bearer_account = HTTPBearer(scheme_name="Account HTTPBearer")
