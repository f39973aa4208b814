from pwdlib import PasswordHash

from welfare_portal.errors import InvalidInput


password_hash = PasswordHash.recommended()


def validate_new_password(raw_password: str, *, min_length: int) -> None:
    if len(raw_password) < min_length:
        raise InvalidInput(f'Password must be at least {min_length} characters')


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return password_hash.verify(raw_password, hashed_password)
