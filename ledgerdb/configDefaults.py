"""Default ledgerdb configuration, used when no config file is given or it fails to load."""

from .core.contract import (
    DEFAULT_RPC_ENDPOINT, DEFAULT_PROGRAM_ID, DEFAULT_CHUNK_PROGRAM_ID,
    FETCH_BATCH_SIZE, SIGNATURE_PAGE_LIMIT, SESSION_SIGNATURE_LIMIT, DEFAULT_MAX_TX,
)

DEFAULT_CONFIG = {
    "_comment_purpose": "Connection and scan settings for ledgerdb readers. Every entry point receives these explicitly.",
    "_comment_configVersion": "Bump configVersion when adding/removing required fields.",
    "_comment_idlPath": "Anchor IDL of the table program (file path or http(s) URL). Without it row reads return nothing.",
    "configVersion": "1.0",
    "rpcEndpoint": DEFAULT_RPC_ENDPOINT,
    "programId": DEFAULT_PROGRAM_ID,
    "chunkProgramId": DEFAULT_CHUNK_PROGRAM_ID,
    "commitment": "confirmed",
    "idlPath": None,
    "scan": {
        "batchSize": FETCH_BATCH_SIZE,
        "signaturePageLimit": SIGNATURE_PAGE_LIMIT,
        "sessionSignatureLimit": SESSION_SIGNATURE_LIMIT,
        "maxTx": DEFAULT_MAX_TX
    },
    "network": {
        "requestTimeoutSeconds": 30.0,
        "retryAttempts": 3,
        "retryDelaySeconds": 1.0
    },
    "logging": {
        "logDir": None,
        "level": "INFO",
        "console": True,
        "file": True,
        "maxBytes": 10_000_000,
        "backupCount": 5,
        "utc": False
    }
}
