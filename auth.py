import logging
import os
import secrets
import uuid
from datetime import datetime, timezone, timedelta
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext

from database import db, get_by_id, insert_with_id, utcnow, as_utc
from schemas import OtpCode

logger = logging.getLogger(__name__)

# JWT / Auth setup
SECRET_KEY = os.getenv("JWT_SECRET", "devsecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 8
REFRESH_TOKEN_EXPIRE_DAYS = 7
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

OTP_LENGTH = 6
OTP_EXPIRE_MINUTES = 5

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
# auto_error off so a missing header gets our own 401 message
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)

# ------------------------- Password utils -------------------------


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

# ------------------------- Tokens -------------------------


def token_claims(user: dict) -> dict:
    return {"sub": user["id"], "sellerName": user["username"], "userType": user["userType"]}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": "refresh", "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def issue_session(user: dict) -> dict:
    """Sign a token pair and make the refresh token the user's only valid one."""
    claims = token_claims(user)
    access_token = create_access_token(claims)
    refresh_token = create_refresh_token(claims)
    db["user"].update_one({"id": user["id"]}, {"$set": {"refreshToken": refresh_token, "updatedAt": utcnow()}})
    return {
        "token": access_token,
        "refreshToken": refresh_token,
        "userType": user["userType"],
        "username": user["username"],
    }


def refresh_access_token(refresh_token: Optional[str]) -> str:
    if not refresh_token:
        raise HTTPException(status_code=401, detail="No refresh token provided")
    user = db["user"].find_one({"refreshToken": refresh_token})
    if not user:
        raise HTTPException(status_code=403, detail="Invalid refresh token")
    try:
        payload = jwt.decode(refresh_token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=403, detail="Invalid refresh token")
    if payload.get("type") != "refresh" or payload.get("sub") != user["id"]:
        raise HTTPException(status_code=403, detail="Invalid refresh token")
    return create_access_token(token_claims(user))


# Dependency: get current user from token

def get_current_user(token: Optional[str] = Depends(oauth2_scheme)):
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise HTTPException(status_code=403, detail="Invalid token")
    user_id = payload.get("sub")
    if payload.get("type") != "access" or not user_id:
        raise HTTPException(status_code=403, detail="Invalid token")
    user = get_by_id("user", user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_user_type(*user_types):
    def wrapper(user=Depends(get_current_user)):
        if user.get("userType") not in user_types:
            raise HTTPException(status_code=403, detail=f"Only {' or '.join(user_types)} accounts can do this")
        return user
    return wrapper

# ------------------------- One-time passwords -------------------------


def generate_otp() -> str:
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def issue_otp(user: dict, purpose: str) -> str:
    """Store a fresh hashed code for (user, purpose), replacing any earlier one."""
    code = generate_otp()
    now = utcnow()
    record = OtpCode(
        userId=user["id"],
        purpose=purpose,
        codeHash=get_password_hash(code),
        expiresAt=now + timedelta(minutes=OTP_EXPIRE_MINUTES),
        createdAt=now,
    ).model_dump()
    db["otp"].delete_many({"userId": user["id"], "purpose": purpose})
    insert_with_id("otp", record)
    return code


def discard_otp(user: dict, purpose: str):
    db["otp"].delete_many({"userId": user["id"], "purpose": purpose})


def consume_otp(user: dict, purpose: str, code: Optional[str]) -> bool:
    """Check a code and delete it on success. Each code verifies at most once."""
    if not code:
        return False
    record = db["otp"].find_one({"userId": user["id"], "purpose": purpose})
    if not record:
        return False
    if as_utc(record["expiresAt"]) < utcnow():
        db["otp"].delete_one({"_id": record["_id"]})
        return False
    if not verify_password(str(code), record.get("codeHash", "")):
        return False
    # a concurrent verifier may have consumed it first
    return db["otp"].find_one_and_delete({"_id": record["_id"]}) is not None
