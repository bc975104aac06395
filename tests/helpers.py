from app.utils.security import create_access_token, token_claims

PASSWORD = "secret123"


def auth_headers(user):
    token, _ = create_access_token(token_claims(user))
    return {"Authorization": f"Bearer {token}"}
