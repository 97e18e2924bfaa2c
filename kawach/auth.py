from fastapi import Header, HTTPException
import os
from dotenv import load_dotenv

load_dotenv()

API_KEY = os.getenv("KAWACH_API_KEY", "kawach-dev-key")  # Default for local runs and tests

async def get_api_key(x_api_key: str = Header(..., alias="x-api-key")):
    """
    Shared service key from the x-api-key header.
    Falls back to 'kawach-dev-key' when KAWACH_API_KEY is not set.
    """
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return x_api_key

async def get_user_id(x_user_id: str = Header(..., alias="x-user-id")):
    """Acting user, forwarded by the gateway that authenticated the request."""
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user id")
    return x_user_id.strip()
