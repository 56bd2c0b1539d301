"""System keychain slot for the Questrade seed refresh token.

The seed is the manual token generated in Questrade's API centre.  Its
lifecycle is short:

1. ``scripts/setup_questrade.py`` writes it here once.
2. :class:`config.KeychainSettingsSource` reads it back as the lowest
   priority source of ``QUESTRADE_REFRESH_TOKEN``.
3. The first ``sync-credentials`` run exchanges it.  Questrade burns it
   on that exchange and the agent keeps its own rotating token in the
   store from then on.
4. The slot can be cleared; the seed is only needed again if the store
   is lost, and then a freshly generated one must be written anyway.

``keyring`` is imported lazily so a machine without a keychain backend
can still run the agent from an env var or ``.env`` seed.
"""

import logging
from types import ModuleType

logger = logging.getLogger(__name__)

SERVICE_NAME = "questrade-sync"
SEED_TOKEN_KEY = "QUESTRADE_REFRESH_TOKEN"

# Settings fields that may be sourced from the keychain.
CREDENTIAL_KEYS: frozenset[str] = frozenset({SEED_TOKEN_KEY})


def _keyring() -> ModuleType | None:
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def get_credential(key: str) -> str | None:
    """Read a keychain-backed setting, or ``None`` if there is none.

    A missing backend or a backend error reads as "no seed stored", so
    the settings chain falls through to the env var and ``.env``.
    """
    if key not in CREDENTIAL_KEYS:
        return None
    keyring = _keyring()
    if keyring is None:
        return None
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def has_seed_token() -> bool:
    """True when a seed token is waiting in the keychain."""
    return bool(get_credential(SEED_TOKEN_KEY))


def store_seed_token(token: str) -> bool:
    """Write a freshly generated seed, replacing any previous one.

    Returns ``False`` when the token is blank or the keychain refused it;
    the caller then falls back to an env var.
    """
    token = token.strip() if token else ""
    if not token:
        logger.warning("Refusing to store an empty seed token")
        return False
    keyring = _keyring()
    if keyring is None:
        logger.warning("keyring is not installed, cannot store the seed token")
        return False
    try:
        keyring.set_password(SERVICE_NAME, SEED_TOKEN_KEY, token)
    except Exception:
        logger.warning("Failed to store the seed token in the keychain", exc_info=True)
        return False
    logger.info("Stored seed token in keychain")
    return True


def clear_seed_token() -> bool:
    """Remove the seed once it has been exchanged.

    Returns ``False`` when nothing was stored or the keychain is unavailable.
    """
    keyring = _keyring()
    if keyring is None:
        return False
    try:
        keyring.delete_password(SERVICE_NAME, SEED_TOKEN_KEY)
    except Exception:
        logger.debug("No seed token to delete", exc_info=True)
        return False
    logger.info("Cleared seed token from keychain")
    return True
