"""
xnft: cross-ledger NFT bridge

Moves hybrid fungible/NFT assets between independent ledgers over an
asynchronous, at-least-once message channel.

Features:
- Per-sender operation ids (keccak over chain, contract, sender, nonce)
- Bit-exact wire codec for whole and split transfers
- All-or-nothing fractional distribution of one asset's backing value
- Id re-mapping between ledger-specific id ranges
- Pluggable persistence (memory, SQLite)
"""

from .errors import (
    BridgeError, ConfigurationError, StorageError,
    EncodingError, DecodingError, InvalidMessageType,
    InvariantViolation, TotalAmountMustBeOne, WholeUnitMismatch, AssetAlreadyLive,
    OperationAlreadyApplied,
    DistributionFailed,
    UnauthorizedError, NotOwnerError, NotMailboxError, UnenrolledRouterError,
    GasLimitNotSet, InsufficientFee, ReentrantCall,
)
from .operation import OperationIdGenerator, compute_operation_id, keccak256
from .codec import (
    MessageType, SendWhole, SendSplit, MAX_ELEMENTS,
    encode, decode, encode_whole, decode_whole, encode_split, decode_split,
    message_type, address_to_bytes32, bytes32_to_address,
)
from .token import TokenCapability, HybridToken
from .distributor import FractionalDistributor, check_split
from .transport import (
    Envelope, Mailbox, InterchainNetwork, DeliveryMetadata,
    SecurityModule, TrustedRelayerISM, MerkleRootISM,
)
from .config import BridgeConfig
from .storage import (
    StorageBackend, SQLiteBackend, MemoryBackend, BridgeStore, get_storage_backend,
)
from .bridge import NFTBridge, Operation, OperationState

__version__ = "0.1.0"

__all__ = [
    # Errors
    'BridgeError', 'ConfigurationError', 'StorageError',
    'EncodingError', 'DecodingError', 'InvalidMessageType',
    'InvariantViolation', 'TotalAmountMustBeOne', 'WholeUnitMismatch',
    'AssetAlreadyLive', 'OperationAlreadyApplied', 'DistributionFailed',
    'UnauthorizedError', 'NotOwnerError', 'NotMailboxError', 'UnenrolledRouterError',
    'GasLimitNotSet', 'InsufficientFee', 'ReentrantCall',
    # Operation ids
    'OperationIdGenerator', 'compute_operation_id', 'keccak256',
    # Codec
    'MessageType', 'SendWhole', 'SendSplit', 'MAX_ELEMENTS',
    'encode', 'decode', 'encode_whole', 'decode_whole', 'encode_split',
    'decode_split', 'message_type', 'address_to_bytes32', 'bytes32_to_address',
    # Token
    'TokenCapability', 'HybridToken',
    # Distribution
    'FractionalDistributor', 'check_split',
    # Transport
    'Envelope', 'Mailbox', 'InterchainNetwork', 'DeliveryMetadata',
    'SecurityModule', 'TrustedRelayerISM', 'MerkleRootISM',
    # Config / storage
    'BridgeConfig', 'StorageBackend', 'SQLiteBackend', 'MemoryBackend',
    'BridgeStore', 'get_storage_backend',
    # Bridge
    'NFTBridge', 'Operation', 'OperationState',
]
