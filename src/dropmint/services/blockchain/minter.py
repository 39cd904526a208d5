"""Web3 minter: creates one ERC-721 token per folder on the configured contract."""

import asyncio
import threading
from decimal import Decimal

import structlog
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from dropmint.abi import get_contract_abi
from dropmint.models.metadata import Creator
from dropmint.models.results import MintRequest, MintResult
from dropmint.services.exceptions import (
    GasEstimationError,
    InsufficientFundsError,
    TransactionRevertError,
    TransactionSubmissionError,
    TransactionTimeoutError,
    TransientError,
)

logger = structlog.get_logger()


class Web3Minter:
    """Blockchain minter for single-token create transactions."""

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        minter_private_key: str,
        gas_buffer_percentage: float = 0.20,
        transaction_timeout: int = 180,
    ):
        """
        Initialize minter.

        Args:
            w3: Web3 instance connected to the target network
            contract_address: DropMintNFT contract address
            minter_private_key: Private key for the minting wallet (0x-prefixed hex)
            gas_buffer_percentage: Safety buffer for gas estimation (default: 0.20 = 20%)
            transaction_timeout: Max wait time for confirmation in seconds (default: 180)
        """
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.minter_private_key = minter_private_key
        self.gas_buffer = 1.0 + gas_buffer_percentage
        self.transaction_timeout = transaction_timeout

        # Load contract ABI from package resources
        self.contract_abi = get_contract_abi()
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=self.contract_abi)

        self.minter_account = Account.from_key(minter_private_key)
        self.minter_address = self.minter_account.address

        # Held from nonce allocation through send_raw_transaction
        self._nonce_lock = threading.Lock()
        self._next_nonce: int | None = None

        logger.info(
            "minter.initialized",
            minter_address=self.minter_address,
            contract_address=self.contract_address,
            gas_buffer=self.gas_buffer,
            timeout=transaction_timeout,
        )

    def get_minter_address(self) -> str:
        return self.minter_address

    def get_balance_eth(self) -> Decimal:
        """Current minter wallet balance in ETH."""
        balance_wei = self.w3.eth.get_balance(self.minter_address)
        return Decimal(balance_wei) / Decimal(10**18)

    def _creator_args(self, creators: list[Creator] | None) -> tuple[list[str], list[int]]:
        """Split creators into contract arguments, dropping non-EVM addresses."""
        addresses: list[str] = []
        shares: list[int] = []
        for creator in creators or []:
            if not Web3.is_address(creator.address):
                logger.warning("minter.creator_skipped", address=creator.address)
                continue
            addresses.append(Web3.to_checksum_address(creator.address))
            shares.append(creator.share)
        return addresses, shares

    def _build_call(self, request: MintRequest):
        creators, shares = self._creator_args(request.creators)
        return self.contract.functions.createAsset(
            self.minter_address,
            request.name,
            request.symbol,
            request.uri,
            request.royalty_basis_points,
            creators,
            shares,
        )

    def _estimate_fees(self, call) -> tuple[int, int, int]:
        """
        Estimate gas parameters for the create transaction.

        Returns:
            Tuple of (gas_limit, max_fee_per_gas, max_priority_fee_per_gas)

        Raises:
            InsufficientFundsError: Wallet cannot pay for gas
            GasEstimationError: RPC error or simulation failure
        """
        try:
            estimated_gas = call.estimate_gas({"from": self.minter_address})
            gas_limit = int(estimated_gas * self.gas_buffer)

            max_priority_fee = self.w3.eth.max_priority_fee
            latest_block = self.w3.eth.get_block("latest")
            base_fee = latest_block.get("baseFeePerGas", 0)  # type: ignore[arg-type]

            max_priority_fee_buffered = int(max_priority_fee * self.gas_buffer)
            max_fee_per_gas = int((base_fee * 2) + max_priority_fee_buffered)

            logger.debug(
                "minter.gas_estimated",
                estimated_gas=estimated_gas,
                gas_limit=gas_limit,
                base_fee=base_fee,
                max_fee_per_gas=max_fee_per_gas,
            )
            return gas_limit, max_fee_per_gas, max_priority_fee_buffered

        except Exception as e:
            error_msg = str(e)
            logger.error("minter.gas_estimation_failed", error=error_msg)

            if "insufficient funds" in error_msg.lower():
                raise InsufficientFundsError(
                    "Minter wallet has insufficient balance for gas. "
                    f"Fund {self.minter_address} and reprocess the folder."
                ) from e
            if "execution reverted" in error_msg.lower():
                raise GasEstimationError(
                    "Transaction simulation reverted. "
                    "Check that the minter wallet is allowed to mint on the contract."
                ) from e
            raise GasEstimationError(f"Gas estimation failed: {error_msg}") from e

    def _token_id_from_receipt(self, receipt) -> int | None:
        events = self.contract.events.Transfer().process_receipt(receipt)
        for event in events:
            if event["args"]["from"] == "0x0000000000000000000000000000000000000000":
                return int(event["args"]["tokenId"])
        return None

    def _allocate_nonce(self) -> int:
        """Next nonce for the minter wallet. Caller must hold _nonce_lock."""
        pending = self.w3.eth.get_transaction_count(self.minter_address, "pending")
        if self._next_nonce is not None and self._next_nonce > pending:
            return self._next_nonce
        return pending

    def _create_asset_sync(self, request: MintRequest) -> MintResult:
        call = self._build_call(request)
        gas_limit, max_fee_per_gas, max_priority_fee_per_gas = self._estimate_fees(call)

        with self._nonce_lock:
            nonce = self._allocate_nonce()
            transaction = call.build_transaction(
                {
                    "from": self.minter_address,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "maxFeePerGas": max_fee_per_gas,
                    "maxPriorityFeePerGas": max_priority_fee_per_gas,
                    "chainId": self.w3.eth.chain_id,
                }  # type: ignore[arg-type]
            )
            signed_txn = self.w3.eth.account.sign_transaction(
                transaction, private_key=self.minter_private_key
            )

            try:
                tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
            except Exception as e:
                logger.error(
                    "minter.transaction_submission_failed",
                    error=str(e),
                    name=request.name,
                    nonce=nonce,
                )
                raise TransactionSubmissionError(
                    f"Transaction submission failed: {str(e)}"
                ) from e
            self._next_nonce = nonce + 1

        tx_hash_hex = tx_hash.hex()
        logger.info(
            "minter.transaction_submitted",
            tx_hash=tx_hash_hex,
            name=request.name,
            nonce=nonce,
            gas_limit=gas_limit,
        )

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.transaction_timeout
            )
        except TimeExhausted as e:
            logger.warning(
                "minter.transaction_timeout",
                tx_hash=tx_hash_hex,
                timeout=self.transaction_timeout,
            )
            raise TransactionTimeoutError(
                f"Transaction confirmation timeout: {tx_hash_hex}. "
                "It may still land; check the explorer before reprocessing."
            ) from e

        if receipt["status"] == 0:
            logger.error(
                "minter.transaction_reverted",
                tx_hash=tx_hash_hex,
                block_number=receipt["blockNumber"],
                gas_used=receipt["gasUsed"],
            )
            raise TransactionRevertError(f"Transaction reverted: {tx_hash_hex}")

        token_id = self._token_id_from_receipt(receipt)
        mint_address = (
            f"{self.contract_address}:{token_id}" if token_id is not None else self.contract_address
        )

        logger.info(
            "minter.transaction_confirmed",
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            token_id=token_id,
        )
        return MintResult(signature=tx_hash_hex, mint_address=mint_address)

    async def create_asset(self, request: MintRequest) -> MintResult:
        """
        Submit a create transaction and wait for confirmation.

        web3 calls block, so the whole submission runs in a worker thread to
        keep other folders moving on the event loop.

        Returns:
            MintResult with transaction hash and <contract>:<tokenId>

        Raises:
            InsufficientFundsError: Wallet cannot pay for gas
            TransientError: Estimation, submission or confirmation failure
            PermanentError: Transaction reverted on-chain
        """
        try:
            return await asyncio.to_thread(self._create_asset_sync, request)
        except (
            GasEstimationError,
            InsufficientFundsError,
            TransactionSubmissionError,
            TransactionTimeoutError,
            TransactionRevertError,
        ):
            raise
        except Exception as e:
            logger.error("minter.unexpected_error", error=str(e), name=request.name)
            raise TransientError(f"Unexpected error: {str(e)}") from e
