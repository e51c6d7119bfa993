"""Entity secret generation, encryption and registration.

The entity secret is a 32-byte key that authorises write operations on
developer-controlled wallets. Circle never sees it in plain text: each
request carries it encrypted with the entity's RSA public key
(RSA-OAEP with SHA-256), and the secret itself must be registered once.

To set up a fresh Circle account::

    from circle_cctp.client import CircleWalletsClient
    from circle_cctp.entity_secret import setup_entity_secret

    result = setup_entity_secret(
        lambda secret: CircleWalletsClient(api_key, secret),
        entity_secret=os.environ.get("CIRCLE_ENTITY_SECRET"),
        env_file=Path(".env"),
    )
"""

import base64
import datetime
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from dotenv import set_key

from circle_cctp.exceptions import AuthError, RemoteError

if TYPE_CHECKING:
    from circle_cctp.client import CircleWalletsClient


logger = logging.getLogger(__name__)

#: Circle error code when the entity secret ciphertext has not been registered
ENTITY_SECRET_NOT_REGISTERED = 156013

#: Entity secret length in bytes
ENTITY_SECRET_LENGTH = 32

#: Environment variable holding the entity secret
ENTITY_SECRET_ENV_VAR = "CIRCLE_ENTITY_SECRET"


@dataclass(slots=True)
class EntitySecretSetup:
    """Outcome of :py:func:`setup_entity_secret`."""

    #: The working entity secret, hex encoded
    entity_secret: str

    #: We had to generate a new secret
    generated: bool

    #: We registered the secret with Circle during this run
    registered: bool

    #: Circle returned a recovery file on registration
    recovery_file: str | None = None

    #: Wallet set created to prove the secret works
    test_wallet_set_id: str | None = None

    #: Where a newly generated secret was written
    saved_to: Path | None = None


def generate_entity_secret() -> str:
    """Generate a new random entity secret.

    :return:
        64 hex characters
    """
    return secrets.token_hex(ENTITY_SECRET_LENGTH)


def encrypt_entity_secret(entity_secret: str, public_key_pem: str) -> str:
    """Encrypt the entity secret for a single API request.

    RSA-OAEP padding is randomised, so every call gives a different ciphertext,
    as Circle requires.

    :param entity_secret:
        Hex encoded 32-byte secret

    :param public_key_pem:
        Entity public key from ``/v1/w3s/config/entity/publicKey``

    :return:
        Base64 encoded ciphertext
    """
    secret_bytes = bytes.fromhex(entity_secret)
    if len(secret_bytes) != ENTITY_SECRET_LENGTH:
        raise ValueError(f"Entity secret must be {ENTITY_SECRET_LENGTH} bytes, got {len(secret_bytes)}")

    public_key = serialization.load_pem_public_key(public_key_pem.encode())
    ciphertext = public_key.encrypt(
        secret_bytes,
        padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        ),
    )
    return base64.b64encode(ciphertext).decode()


def check_entity_secret(client: "CircleWalletsClient") -> str:
    """Prove the entity secret works by doing a write operation.

    Creates a throwaway wallet set.

    :return:
        Id of the created wallet set
    """
    timestamp = int(datetime.datetime.now(datetime.UTC).timestamp() * 1000)
    wallet_set = client.create_wallet_set(f"Test Wallet Set {timestamp}")
    logger.info("Entity secret works, created test wallet set %s", wallet_set.get("id"))
    return wallet_set.get("id")


def save_entity_secret(env_file: Path, entity_secret: str):
    """Store the entity secret in a dotenv file."""
    env_file.touch(exist_ok=True)
    set_key(env_file, ENTITY_SECRET_ENV_VAR, entity_secret)
    logger.info("Entity secret saved to %s", env_file)


def setup_entity_secret(
    client_factory: Callable[[str], "CircleWalletsClient"],
    entity_secret: str | None = None,
    env_file: Path | None = None,
) -> EntitySecretSetup:
    """Make sure we have a registered, working entity secret.

    1. If we already have a secret, test it
    2. If Circle says it is not registered, register and test again
    3. Otherwise generate a new secret, register it, save it and test it

    :param client_factory:
        Creates an API client using a given entity secret

    :param entity_secret:
        Existing secret, if any

    :param env_file:
        Append a newly generated secret to this dotenv file

    :raise AuthError:
        The API key is not valid

    :raise RemoteError:
        Registering the new secret failed
    """
    if entity_secret:
        logger.info("Testing existing entity secret %s...", entity_secret[:8])
        client = client_factory(entity_secret)
        try:
            wallet_set_id = check_entity_secret(client)
            return EntitySecretSetup(
                entity_secret=entity_secret,
                generated=False,
                registered=False,
                test_wallet_set_id=wallet_set_id,
            )
        except RemoteError as e:
            if e.code == ENTITY_SECRET_NOT_REGISTERED:
                logger.warning("Entity secret has not been registered with Circle, registering it now")
                try:
                    response = client.register_entity_secret_ciphertext(entity_secret)
                    wallet_set_id = check_entity_secret(client)
                    return EntitySecretSetup(
                        entity_secret=entity_secret,
                        generated=False,
                        registered=True,
                        recovery_file=response.get("recoveryFile"),
                        test_wallet_set_id=wallet_set_id,
                    )
                except AuthError:
                    raise
                except RemoteError as registration_error:
                    logger.warning("Failed to register existing entity secret: %s", registration_error)
            elif isinstance(e, AuthError):
                raise
            else:
                logger.warning("Error testing entity secret: %s", e)

    logger.info("Generating a new entity secret")
    new_secret = generate_entity_secret()
    client = client_factory(new_secret)
    response = client.register_entity_secret_ciphertext(new_secret)
    logger.info("Entity secret registered, recovery file: %s", "generated" if response.get("recoveryFile") else "not available")

    if env_file is not None:
        save_entity_secret(env_file, new_secret)

    wallet_set_id = check_entity_secret(client)

    return EntitySecretSetup(
        entity_secret=new_secret,
        generated=True,
        registered=True,
        recovery_file=response.get("recoveryFile"),
        test_wallet_set_id=wallet_set_id,
        saved_to=env_file,
    )
