"""Mint orchestrator: normalizes metadata into a create-asset call and submits it.

Mints are never retried here. Resubmitting a create transaction after an
ambiguous failure can produce a duplicate on-chain asset, so retry decisions
belong to the operator.
"""

import structlog

from dropmint.models.metadata import MetadataDocument, filter_creators, normalize_royalty
from dropmint.models.results import MintRequest, MintResult
from dropmint.services.exceptions import MintError
from dropmint.services.interfaces import Minter

logger = structlog.get_logger()


class MintOrchestrator:
    """Builds and submits mint requests."""

    def __init__(self, minter: Minter):
        self.minter = minter

    def build_request(self, metadata_uri: str, document: MetadataDocument) -> MintRequest:
        """Apply defaults, clamping and creator filtering.

        - Royalty: defaults to 0, clamped to [0, 10000] basis points,
          percentage = basis points / 100
        - Creators: only addresses of 32-44 characters; None if none survive
        - Symbol: defaults to ""
        """
        basis_points = normalize_royalty(document.seller_fee_basis_points)
        creators = filter_creators(document.creators)
        symbol = document.symbol if isinstance(document.symbol, str) else ""

        if document.creators and creators is None:
            logger.info("mint.creators_defaulted", name=document.name)

        return MintRequest(
            name=document.name,
            symbol=symbol,
            uri=metadata_uri,
            royalty_basis_points=basis_points,
            seller_fee_percent=basis_points / 100,
            creators=creators,
        )

    async def mint(self, metadata_uri: str, document: MetadataDocument) -> MintResult:
        """Submit the create-asset transaction and wait for confirmation.

        Raises:
            MintError: Submission or confirmation failed (outcome may be ambiguous)
        """
        request = self.build_request(metadata_uri, document)
        logger.info(
            "mint.submitting",
            name=request.name,
            symbol=request.symbol,
            uri=request.uri,
            royalty_basis_points=request.royalty_basis_points,
            seller_fee_percent=request.seller_fee_percent,
            creator_count=len(request.creators) if request.creators else 0,
        )

        try:
            result = await self.minter.create_asset(request)
        except Exception as e:
            logger.error(
                "mint.failed",
                name=request.name,
                uri=request.uri,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MintError(
                f"Mint failed for {request.name}: {e}",
                cause=f"{type(e).__name__}: {e}",
            ) from e

        logger.info(
            "mint.confirmed",
            name=request.name,
            signature=result.signature,
            mint_address=result.mint_address,
        )
        return result
