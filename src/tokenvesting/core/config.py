"""
Token vesting configuration.

Deployment parameters come from environment variables:

- TOKENVESTING_OWNER: administrator address
- TOKENVESTING_AUTHORITY_SIGNER: delegation authority address
- TOKENVESTING_COMMITMENT_ROOT: 32-byte merkle root (hex)
- TOKENVESTING_LOG_LEVEL / TOKENVESTING_LOG_FORMAT / TOKENVESTING_LOG_FILE
- TOKENVESTING_ENVIRONMENT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from tokenvesting.core.blockchain_exceptions import ConfigurationError, InvalidAddressError
from tokenvesting.core.crypto_utils import HASH_LENGTH, coerce_bytes, is_zero_address, normalize_address

logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("TOKENVESTING_ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("TOKENVESTING_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("TOKENVESTING_LOG_FORMAT", "text").strip().lower()
LOG_FILE = os.getenv("TOKENVESTING_LOG_FILE", "").strip() or None


@dataclass
class VestingConfig:
    owner: str
    authority_signer: str
    commitment_root: str

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "VestingConfig":
        env = os.environ if environ is None else environ
        config = cls(
            owner=env.get("TOKENVESTING_OWNER", "").strip(),
            authority_signer=env.get("TOKENVESTING_AUTHORITY_SIGNER", "").strip(),
            commitment_root=env.get("TOKENVESTING_COMMITMENT_ROOT", "").strip(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If a required value is missing or malformed
        """
        for field_name, env_var in (
            ("owner", "TOKENVESTING_OWNER"),
            ("authority_signer", "TOKENVESTING_AUTHORITY_SIGNER"),
        ):
            value = getattr(self, field_name)
            if is_zero_address(value):
                raise ConfigurationError(
                    f"{env_var} must be set to a non-zero address",
                    details={"env_var": env_var},
                )
            try:
                normalize_address(value, field_name)
            except InvalidAddressError as exc:
                raise ConfigurationError(
                    f"{env_var} is not a valid address: {value!r}",
                    details={"env_var": env_var},
                ) from exc

        try:
            coerce_bytes(self.commitment_root, HASH_LENGTH)
        except ValueError as exc:
            raise ConfigurationError(
                "TOKENVESTING_COMMITMENT_ROOT must be a 32-byte hex value",
                details={"env_var": "TOKENVESTING_COMMITMENT_ROOT"},
            ) from exc
