from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """Hash a plain-text password with the current Argon2 parameters."""
    return passwordHasher.hash(password)


def checkPassword(password: str, actual_password: str) -> bool:
    """
    Verify a plain-text password against a stored Argon2 hash.

    A stored value that is not an Argon2 hash never matches.
    """
    try:
        return passwordHasher.verify(actual_password, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def upgradedPassword(password: str, actual_password: str) -> str | None:
    """
    Return a fresh hash when the stored one was made with outdated
    parameters, otherwise None.

    Must only be called after `checkPassword` succeeded.
    """
    if passwordHasher.check_needs_rehash(actual_password):
        return passwordHasher.hash(password)
    return None
