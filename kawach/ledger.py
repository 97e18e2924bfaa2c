"""
EVIDENCE LEDGER - Hash-linked, proof-of-work sealed evidence chain

KEY INVARIANTS:
1. Genesis block at index 0 with previous hash sentinel "0"
2. Block i links to block i-1: chain[i].previous_hash == chain[i-1].hash
3. hash == sha256(index + previous_hash + timestamp + canonical(payload) + nonce)
4. Sealed blocks carry `difficulty` leading zero hex digits
5. Append-only: no block is ever removed or edited by the ledger

CONCURRENCY:
append() mines outside the ledger lock and pushes only if the tip it mined
on is still the tip, so appends are serialised per ledger and readers never
wait on proof-of-work. Mining is CPU-bound and synchronous; async callers
must dispatch it with asyncio.to_thread (see vault.py).

NOT A BLOCKCHAIN:
Single in-process instance, no peers, no consensus. The proof-of-work is a
cheap seal (default difficulty 2) for tamper evidence only.
"""

import os
import copy
import json
import time
import uuid
import hashlib
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DIFFICULTY = int(os.getenv("LEDGER_DIFFICULTY", "2"))
DEFAULT_MAX_NONCE = int(os.getenv("LEDGER_MAX_NONCE", "5000000"))

GENESIS_PREVIOUS_HASH = "0"
GENESIS_PAYLOAD = {
    "message": "Kawach Evidence Vault Genesis Block",
    "creator": "system",
}

# Keys an evidence payload must carry to pass validation
REQUIRED_EVIDENCE_FIELDS = ("fileName", "fileHash", "userId", "uploadedAt")


# ==============================================================================
# ERRORS
# ==============================================================================

class LedgerError(Exception):
    """Base class for ledger failures"""


class ChainCorruption(LedgerError):
    """
    validate() returned False: hash mismatch, broken link or malformed payload.
    Terminal for the chain's trust status - never auto-repaired.
    """

    def __init__(self, message: str = "Blockchain corruption detected",
                 verification: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.verification = verification or {}


class MiningTimeout(LedgerError):
    """Sealing gave up after max_nonce attempts. Retriable, not corruption."""

    def __init__(self, block_index: int, attempts: int, difficulty: int):
        super().__init__(
            f"Mining block {block_index} exceeded {attempts} attempts "
            f"at difficulty {difficulty}"
        )
        self.block_index = block_index
        self.attempts = attempts
        self.difficulty = difficulty


# ==============================================================================
# HASHING
# ==============================================================================

def canonical_json(payload: Any) -> str:
    """Stable serialisation used for hashing: sorted keys, no whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"),
                      ensure_ascii=False, default=str)


def now_millis() -> int:
    return int(time.time() * 1000)


class Block:
    """Single sealed record in the ledger"""

    def __init__(self, index: int, timestamp: int, payload: Any, previous_hash: str = ""):
        self.index = index
        self.timestamp = timestamp
        self.payload = payload
        self.previous_hash = previous_hash
        self.nonce = 0
        self.hash = self.calculate_hash()

    def calculate_hash(self) -> str:
        raw = (
            f"{self.index}{self.previous_hash}{self.timestamp}"
            f"{canonical_json(self.payload)}{self.nonce}"
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def mine(self, difficulty: int, max_nonce: int = DEFAULT_MAX_NONCE) -> str:
        """
        Proof-of-work seal: bump nonce until the hash starts with
        `difficulty` zeros. Mutates only nonce and hash.

        Raises MiningTimeout after max_nonce attempts.
        """
        target = "0" * difficulty
        attempts = 0
        while not self.hash.startswith(target):
            if attempts >= max_nonce:
                logger.warning(
                    f"⛏️ Mining aborted for block {self.index} after {attempts} attempts"
                )
                raise MiningTimeout(self.index, attempts, difficulty)
            self.nonce += 1
            attempts += 1
            self.hash = self.calculate_hash()

        logger.info(f"⛏️ Block mined: #{self.index} {self.hash} (nonce={self.nonce})")
        return self.hash

    def has_valid_evidence(self) -> bool:
        """Payload is evidence-shaped: a mapping carrying every required key."""
        if not isinstance(self.payload, dict):
            return False
        return all(field in self.payload for field in REQUIRED_EVIDENCE_FIELDS)

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "payload": copy.deepcopy(self.payload),
            "previousHash": self.previous_hash,
            "nonce": self.nonce,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Block":
        """Rebuild a block exactly as exported - the stored hash is kept, not recomputed."""
        block = cls(data["index"], data["timestamp"], data["payload"], data["previousHash"])
        block.nonce = data["nonce"]
        block.hash = data["hash"]
        return block

    def __repr__(self) -> str:
        return f"Block(index={self.index}, hash={self.hash[:12]}...)"


# ==============================================================================
# LEDGER
# ==============================================================================

class EvidenceLedger:
    """
    Append-only evidence chain.

    One instance per vault, constructed explicitly and handed to whoever needs
    it. Lookups and validation are linear scans; validate() rescans the whole
    chain on every call.
    """

    def __init__(self, difficulty: Optional[int] = None, max_nonce: Optional[int] = None):
        self.difficulty = DEFAULT_DIFFICULTY if difficulty is None else difficulty
        self.max_nonce = DEFAULT_MAX_NONCE if max_nonce is None else max_nonce
        if not 0 <= self.difficulty <= 64:
            raise ValueError(f"difficulty must be between 0 and 64, got {self.difficulty}")
        if self.max_nonce < 0:
            raise ValueError("max_nonce must be non-negative")

        self._lock = threading.RLock()
        self.chain: List[Block] = [self.create_genesis()]

    def create_genesis(self) -> Block:
        return Block(0, now_millis(), dict(GENESIS_PAYLOAD), GENESIS_PREVIOUS_HASH)

    @property
    def genesis(self) -> Block:
        return self.chain[0]

    def latest_block(self) -> Block:
        return self.chain[-1]

    def __len__(self) -> int:
        return len(self.chain)

    def append(self, payload: Dict) -> Block:
        """
        Seal `payload` into a new block and push it.

        The payload is accepted as-is (schema is the caller's concern) and
        copied so later mutation by the caller cannot touch the sealed block.
        Mining runs without the lock; if another block lands first the
        candidate is rebuilt on the new tip and mined again.
        On MiningTimeout nothing is appended.
        """
        while True:
            with self._lock:
                previous = self.latest_block()
            block = Block(
                previous.index + 1, now_millis(),
                self._stamp_chain_index(payload, previous.index + 1), previous.hash,
            )
            block.mine(self.difficulty, self.max_nonce)

            with self._lock:
                if self.latest_block() is previous:
                    self.chain.append(block)
                    return block
            logger.info(f"⛏️ Block #{block.index} lost the race to another append, re-mining")

    @staticmethod
    def _stamp_chain_index(payload: Any, index: int) -> Any:
        """Copy of the payload with metadata.chainIndex set when the payload asks for it"""
        sealed = copy.deepcopy(payload)
        if isinstance(sealed, dict) and isinstance(sealed.get("metadata"), dict) \
                and "chainIndex" in sealed["metadata"]:
            sealed["metadata"]["chainIndex"] = index
        return sealed

    def create_evidence_data(
        self,
        file_name: str,
        file_hash: str,
        file_size: int,
        user_id: str,
        metadata: Optional[Dict] = None,
    ) -> Dict:
        """Build the payload stored for one evidence file"""
        return {
            "fileName": file_name,
            "fileHash": file_hash,
            "fileSize": file_size,
            "userId": user_id,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "evidenceId": str(uuid.uuid4()),
            "metadata": {
                **(metadata or {}),
                "chainIndex": None,  # Stamped by append() with the sealed index
                "integrity": "verified",
            },
        }

    def find_by_content_hash(self, file_hash: str) -> Optional[Block]:
        for block in list(self.chain):
            if isinstance(block.payload, dict) and block.payload.get("fileHash") == file_hash:
                return block
        return None

    def find_by_owner(self, user_id: str) -> List[Block]:
        return [
            block for block in list(self.chain)
            if isinstance(block.payload, dict) and block.payload.get("userId") == user_id
        ]

    def validate(self) -> bool:
        """
        Full rescan from index 1. Per block, in order:
        (a) evidence-shaped payload, (b) stored hash == recomputed hash,
        (c) previous_hash == hash of the block before.
        """
        with self._lock:
            for i in range(1, len(self.chain)):
                current = self.chain[i]
                previous = self.chain[i - 1]

                if not current.has_valid_evidence():
                    logger.warning(f"🚨 Invalid evidence data found at block {i}")
                    return False

                if current.hash != current.calculate_hash():
                    logger.warning(f"🚨 Invalid hash found at block {i}")
                    return False

                if current.previous_hash != previous.hash:
                    logger.warning(f"🚨 Invalid previous hash found at block {i}")
                    return False

        return True

    def ensure_valid(self):
        """Raise ChainCorruption when the chain fails validation"""
        if not self.validate():
            raise ChainCorruption()

    def stats(self) -> Dict:
        with self._lock:
            return {
                "totalBlocks": len(self.chain),
                "evidenceBlockCount": sum(
                    1 for block in self.chain
                    if isinstance(block.payload, dict) and block.payload.get("fileName")
                ),
                "genesisHash": self.genesis.hash,
                "latestHash": self.latest_block().hash,
                "chainValid": self.validate(),
                "difficulty": self.difficulty,
            }

    def verify_file_integrity(self, file_hash: str) -> Dict:
        """Locate the evidence block for `file_hash` and check it plus the whole chain"""
        block = self.find_by_content_hash(file_hash)
        if block is None:
            return {"verified": False, "message": "Evidence not found in blockchain"}

        if block.calculate_hash() != block.hash:
            return {"verified": False, "message": "Evidence has been tampered with"}

        chain_valid = self.validate()
        return {
            "verified": chain_valid,
            "message": "Evidence integrity verified" if chain_valid else "Blockchain corruption detected",
            "blockIndex": block.index,
            "blockHash": block.hash,
            "timestamp": block.timestamp,
        }

    def export_chain(self) -> Dict:
        """Snapshot for the persistence collaborator"""
        with self._lock:
            return {
                "chain": [block.to_dict() for block in self.chain],
                "stats": self.stats(),
                "exportedAt": datetime.now(timezone.utc).isoformat(),
            }

    @classmethod
    def from_export(
        cls,
        exported: Dict,
        difficulty: Optional[int] = None,
        max_nonce: Optional[int] = None,
    ) -> "EvidenceLedger":
        """
        Restore a ledger from export_chain() output. Blocks are taken verbatim
        (no re-mining); callers should validate() the result.
        """
        blocks = exported.get("chain") or []
        if not blocks:
            raise ValueError("Exported chain is empty")

        if difficulty is None:
            difficulty = (exported.get("stats") or {}).get("difficulty")

        ledger = cls(difficulty=difficulty, max_nonce=max_nonce)
        ledger.chain = [Block.from_dict(data) for data in blocks]
        logger.info(f"📦 Ledger restored with {len(ledger.chain)} blocks")
        return ledger
