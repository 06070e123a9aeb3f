"""
ledgerdb configuration.

LedgerConfig is passed explicitly to every reader and CLI command; no core
function reads endpoints or program ids from module state. loadConfig()
reads a JSON file and falls back to a copy of DEFAULT_CONFIG when the file
is missing or invalid.
"""

import copy
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import orjson

from .configDefaults import DEFAULT_CONFIG
from .core.addresses import toPubkey
from .core.errors import ConfigError, InvalidKeyError


@dataclass
class LedgerConfig:
    rpcEndpoint: str
    programId: str
    chunkProgramId: str
    commitment: str = "confirmed"
    idlPath: Optional[str] = None
    batchSize: int = 50
    signaturePageLimit: int = 1000
    sessionSignatureLimit: int = 1000
    maxTx: int = 100
    requestTimeoutSeconds: float = 30.0
    retryAttempts: int = 3
    retryDelaySeconds: float = 1.0
    logging: Dict[str, Any] = field(default_factory=dict)
    configVersion: str = "1.0"

    @classmethod
    def fromDict(cls, data: dict) -> 'LedgerConfig':
        """
        Build from the JSON layout of DEFAULT_CONFIG; missing keys take defaults.

        Raises:
            ConfigError: wrong types or invalid program ids
        """
        if not isinstance(data, dict):
            raise ConfigError("config is not a JSON object")
        scan = {**DEFAULT_CONFIG['scan'], **(data.get('scan') or {})}
        network = {**DEFAULT_CONFIG['network'], **(data.get('network') or {})}
        loggingSection = {**DEFAULT_CONFIG['logging'], **(data.get('logging') or {})}

        try:
            config = cls(
                rpcEndpoint=str(data.get('rpcEndpoint') or DEFAULT_CONFIG['rpcEndpoint']),
                programId=str(data.get('programId') or DEFAULT_CONFIG['programId']),
                chunkProgramId=str(data.get('chunkProgramId') or DEFAULT_CONFIG['chunkProgramId']),
                commitment=str(data.get('commitment') or DEFAULT_CONFIG['commitment']),
                idlPath=data.get('idlPath'),
                batchSize=int(scan['batchSize']),
                signaturePageLimit=int(scan['signaturePageLimit']),
                sessionSignatureLimit=int(scan['sessionSignatureLimit']),
                maxTx=int(scan['maxTx']),
                requestTimeoutSeconds=float(network['requestTimeoutSeconds']),
                retryAttempts=int(network['retryAttempts']),
                retryDelaySeconds=float(network['retryDelaySeconds']),
                logging=loggingSection,
                configVersion=str(data.get('configVersion', '1.0'))
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid config value: {e}") from e

        config.validate()
        return config

    @classmethod
    def defaults(cls) -> 'LedgerConfig':
        return cls.fromDict(copy.deepcopy(DEFAULT_CONFIG))

    def validate(self):
        if not self.rpcEndpoint.startswith(('http://', 'https://')):
            raise ConfigError(f"rpcEndpoint must be an http(s) URL: {self.rpcEndpoint}")
        for name in ('programId', 'chunkProgramId'):
            try:
                toPubkey(getattr(self, name))
            except InvalidKeyError as e:
                raise ConfigError(f"{name}: {e}") from e
        for name in ('batchSize', 'signaturePageLimit', 'sessionSignatureLimit', 'maxTx', 'retryAttempts'):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be positive")

    def withOverrides(self, **overrides) -> 'LedgerConfig':
        """Copy with non-None overrides applied (CLI flags)"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def loadConfig(path: Optional[Union[str, Path]], log: Optional[object] = None) -> Tuple[LedgerConfig, bool]:
    """
    Load a JSON config file, falling back to defaults on error.

    Returns:
        (config, usedDefaults)
    """
    if path is None:
        return LedgerConfig.defaults(), True

    cfgPath = Path(path)
    try:
        data = orjson.loads(cfgPath.read_bytes())
        config = LedgerConfig.fromDict(data)
        if log:
            log.info("[Config] Loaded config", configPath=str(cfgPath), configVersion=config.configVersion)
        return config, False
    except (OSError, orjson.JSONDecodeError, ConfigError) as e:
        if log:
            log.error("[Config] Failed to load config", configPath=str(cfgPath),
                      errorClass=type(e).__name__, errorMsg=str(e))
        fallback = LedgerConfig.defaults()
        if log:
            log.warning("[Config] Using default config", configVersion=fallback.configVersion)
        return fallback, True
