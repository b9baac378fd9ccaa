"""Patient accounts: registration, password checks and session tokens."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import AuthError, ValidationError
from logging_config import get_logger
from stores import AccountStore

logger = get_logger(__name__)

BEARER_PREFIX = "bearer "


class AccountService:
    """Credential store operations on top of an ``AccountStore``."""

    def __init__(self, store: AccountStore, password_hash_rounds: int = 12):
        self._store = store
        self._pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=password_hash_rounds,
        )

    def hash_password(self, password: str) -> str:
        return self._pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        try:
            return self._pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            # Unknown or corrupt hash format
            return False

    def register(self, name: str, email: str, phone: str | None, password: str) -> str:
        if not name or not name.strip():
            raise ValidationError("Name is required")
        if not password:
            raise ValidationError("Password is required")
        if self._store.find_by_email(email):
            raise ValidationError("Email already registered")

        account_id = self._store.add(
            {
                "name": name.strip(),
                "email": email,
                "phone": phone,
                "password_hash": self.hash_password(password),
            }
        )
        logger.info("Account registered", account_id=account_id)
        return account_id

    def find_by_email(self, email: str) -> dict | None:
        return self._store.find_by_email(email)

    def get(self, account_id: str) -> dict:
        return self._store.get(account_id)


class SessionIssuer:
    """Issues and checks signed, stateless bearer tokens."""

    def __init__(
        self,
        accounts: AccountService,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60 * 12,
    ):
        self._accounts = accounts
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    def issue(self, account_id: str, expires_delta: timedelta | None = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=self._expire_minutes))
        claims = {"sub": account_id, "iat": now, "exp": expire}
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def login(self, email: str, password: str) -> str:
        account = self._accounts.find_by_email(email)
        if account is None:
            raise AuthError("not_found")
        if not self._accounts.verify_password(password, account.get("password_hash", "")):
            logger.info("Login rejected", account_id=account["id"])
            raise AuthError("invalid_credentials")
        return self.issue(account["id"])

    def verify(self, token: str | None) -> str:
        """Return the account id a token was issued for."""
        if token is None or not token.strip():
            raise AuthError("missing")

        token = token.strip()
        if token.lower().startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX) :].strip()

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            raise AuthError("invalid") from None

        account_id = payload.get("sub")
        if not isinstance(account_id, str) or not account_id:
            raise AuthError("invalid")
        return account_id
