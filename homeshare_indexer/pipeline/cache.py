"""In-memory lookups owned by one indexer instance."""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from homeshare_indexer.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContractRef:
    """Database identity of a discovered contract."""

    id: int
    property_id: int
    contract_address: str


class TxSenderCache:
    """Bounded LRU of transaction hash -> sender address."""

    def __init__(self, max_size: int = 10_000):
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._data: "OrderedDict[str, str]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, tx_hash: str) -> bool:
        return tx_hash.lower() in self._data

    def get(self, tx_hash: str) -> Optional[str]:
        key = tx_hash.lower()
        sender = self._data.get(key)
        if sender is not None:
            self._data.move_to_end(key)
        return sender

    def set(self, tx_hash: str, sender: str) -> None:
        key = tx_hash.lower()
        self._data[key] = sender
        self._data.move_to_end(key)
        if len(self._data) > self.max_size:
            self._data.popitem(last=False)

    def get_or_fetch(self, tx_hash: str, fetch: Callable[[str], str]) -> str:
        """Return the cached sender, calling ``fetch`` once on a miss."""
        sender = self.get(tx_hash)
        if sender is not None:
            self.hits += 1
            return sender
        self.misses += 1
        sender = fetch(tx_hash)
        self.set(tx_hash, sender)
        return sender


class ContractRegistry:
    """Address -> ContractRef map for one contract family, rebuilt per batch."""

    def __init__(self, refs: Iterable[ContractRef] = ()):
        self._refs: Dict[str, ContractRef] = {}
        for ref in refs:
            self.add(ref)

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, address: str) -> bool:
        return address.lower() in self._refs

    def get(self, address: str) -> Optional[ContractRef]:
        return self._refs.get(address.lower())

    def add(self, ref: ContractRef) -> None:
        self._refs[ref.contract_address.lower()] = ref

    def addresses(self) -> List[str]:
        return list(self._refs)
