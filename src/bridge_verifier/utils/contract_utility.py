import json
import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_abi import encode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.types import EventData

from ..errors import EventDecodeError, EventNotFoundError
from ..models import LogFilter

logger = logging.getLogger(__name__)

CONTRACTS_DIR = Path(__file__).parent.parent / "contracts"


@lru_cache(maxsize=None)
def _load_contract_json(contract_name: str) -> str:
    contract_path = (CONTRACTS_DIR / f"{contract_name}.json").resolve()
    return contract_path.read_text()


def get_contract_abi(contract_name: str) -> list[dict[str, Any]]:
    """Fetches ABI of the given contract from the contracts folder"""
    contract_data = json.loads(_load_contract_json(contract_name))
    return contract_data["abi"]


def to_hex_str(value: str | bytes) -> str:
    """Normalize a hash-like value to a lowercase 0x-prefixed hex string."""
    if isinstance(value, str):
        return Web3.to_hex(hexstr=value).lower()
    return Web3.to_hex(HexBytes(value)).lower()


class BridgeContract:
    """
    Offline codec for one deployed contract.

    Builds topic filters and decodes logs against the contract ABI without an
    RPC connection, so the same instance serves both past-log scans and live
    subscriptions on any client.
    """

    def __init__(self, contract_name: str, address: str):
        """
        Initialize the codec.

        Args:
            contract_name: Name of the ABI file in the contracts folder
            address: Deployed contract address
        """
        self.contract_name = contract_name
        self.address = Web3.to_checksum_address(address)
        self.abi = get_contract_abi(contract_name)
        self.contract = Web3().eth.contract(address=self.address, abi=self.abi)

    def _event_abi(self, event_name: str) -> dict[str, Any]:
        for entry in self.abi:
            if entry.get("type") == "event" and entry.get("name") == event_name:
                return entry
        raise ValueError(f"Event {event_name} not found in {self.contract_name} ABI")

    def topic(self, event_name: str) -> str:
        """Return the topic0 hash of an event as 0x-prefixed hex."""
        return Web3.to_hex(event_abi_to_log_topic(self._event_abi(event_name)))

    def build_filter(self, event_name: str, *indexed_args: Any) -> LogFilter:
        """
        Build a log filter for an event, constraining leading indexed arguments.

        Args:
            event_name: Event to filter for
            indexed_args: Values for the indexed inputs in ABI order; None matches any

        Returns:
            LogFilter for this contract address
        """
        indexed_inputs = [i for i in self._event_abi(event_name)["inputs"] if i.get("indexed")]
        if len(indexed_args) > len(indexed_inputs):
            raise ValueError(
                f"{event_name} has {len(indexed_inputs)} indexed inputs, got {len(indexed_args)} values"
            )

        topics: list[str | None] = [self.topic(event_name)]
        for abi_input, value in zip(indexed_inputs, indexed_args):
            topics.append(None if value is None else self._encode_topic(abi_input["type"], value))

        # Trailing wildcards are redundant
        while topics and topics[-1] is None:
            topics.pop()

        return LogFilter(address=self.address, topics=tuple(topics))

    @staticmethod
    def _encode_topic(abi_type: str, value: Any) -> str:
        match abi_type:
            case "address":
                value = Web3.to_checksum_address(value)
            case "bytes32":
                value = HexBytes(value)
        return Web3.to_hex(encode([abi_type], [value]))

    def decode_log(self, event_name: str, log: Mapping[str, Any]) -> EventData:
        """
        Decode a raw log against the event ABI.

        Raises:
            EventDecodeError: If the payload does not match the event ABI
        """
        event_obj = getattr(self.contract.events, event_name)
        try:
            return event_obj().process_log(log)
        except (Web3Exception, DecodingError, ValueError, KeyError, TypeError) as e:
            tx_hash = log.get("transactionHash")
            raise EventDecodeError(
                f"Could not decode {event_name} log from {self.contract_name}"
                f" (tx={to_hex_str(tx_hash) if tx_hash else 'unknown'}): {e}"
            ) from e

    def find_log(self, receipt: Mapping[str, Any], event_name: str) -> Mapping[str, Any]:
        """
        Locate the first log of an event in a receipt by its topic hash.

        Raises:
            EventNotFoundError: If no log in the receipt carries the event topic
        """
        topic = self.topic(event_name)
        for log in receipt.get("logs", []):
            topics = log.get("topics", [])
            if topics and to_hex_str(topics[0]) == topic:
                return log

        tx_hash = receipt.get("transactionHash")
        raise EventNotFoundError(event_name, to_hex_str(tx_hash) if tx_hash else None)

    def find_and_decode(self, receipt: Mapping[str, Any], event_name: str) -> EventData:
        return self.decode_log(event_name, self.find_log(receipt, event_name))
