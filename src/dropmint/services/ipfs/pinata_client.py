"""Pinata IPFS client for uploading media and metadata."""

import json

import httpx

from dropmint.services.exceptions import (
    IPFSAuthError,
    IPFSInsufficientFundsError,
    IPFSNetworkError,
    IPFSRateLimitError,
    IPFSValidationError,
    TransientError,
)
from dropmint.services.interfaces import FetchResponse

IPFS_SCHEME = "ipfs://"


class PinataClient:
    """IPFS upload client using Pinata pinning service."""

    def __init__(
        self,
        jwt_token: str,
        gateway_domain: str = "gateway.pinata.cloud",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Pinata client.

        Args:
            jwt_token: Pinata API JWT token (from PINATA_JWT env var)
            gateway_domain: Gateway domain for URL generation (default: public gateway)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.jwt_token = jwt_token
        self.gateway_domain = gateway_domain
        self.timeout = timeout
        self.transport = transport
        self.base_url = "https://api.pinata.cloud"
        self.headers = {"Authorization": f"Bearer {jwt_token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload bytes to IPFS via Pinata.

        Args:
            data: File content
            filename: Name shown in the Pinata dashboard
            content_type: MIME type of the content

        Returns:
            IPFS URI (ipfs://<CIDv1>)

        Raises:
            TransientError: Network timeout, rate limit (429), service unavailable (5xx)
            PermanentError: Invalid API key (401), forbidden (403), bad request (400),
                insufficient funds (402)
        """
        try:
            async with self._client() as client:
                files = {"file": (filename, data, content_type)}
                response = await client.post(
                    f"{self.base_url}/pinning/pinFileToIPFS",
                    headers=self.headers,
                    files=files,
                    data={
                        "pinataOptions": '{"cidVersion": 1}',
                        "pinataMetadata": json.dumps({"name": filename}),
                    },
                )

                self._raise_for_status(response)
                result = response.json()
                return f"{IPFS_SCHEME}{result['IpfsHash']}"

        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Request timeout after {self.timeout}s: {str(e)}") from e
        except httpx.HTTPError as e:
            if isinstance(e, httpx.HTTPStatusError):
                # Already classified above
                raise
            raise IPFSNetworkError(f"Network error: {str(e)}") from e

    async def fetch(self, uri: str) -> FetchResponse:
        """Retrieve a URI through the gateway for verification.

        HTTP error statuses are returned, not raised. Transport failures raise
        IPFSNetworkError.
        """
        url = self.resolve_uri(uri)
        try:
            async with self._client() as client:
                response = await client.get(url, follow_redirects=True)
                return FetchResponse(
                    status=response.status_code,
                    headers=dict(response.headers),
                    content=response.content,
                )
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Gateway fetch failed for {url}: {str(e)}") from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        # Error classification
        if response.status_code == 429:
            raise IPFSRateLimitError(f"Rate limit exceeded: {response.text}")
        elif response.status_code in (500, 502, 503, 504):
            raise TransientError(f"Service unavailable ({response.status_code}): {response.text}")
        elif response.status_code == 401:
            raise IPFSAuthError(
                "Unauthorized: Invalid API key. "
                "Check PINATA_JWT configuration in .env file. "
                "Verify JWT token is active at https://app.pinata.cloud/developers/api-keys"
            )
        elif response.status_code == 402 or (
            response.status_code == 403 and "insufficient" in response.text.lower()
        ):
            raise IPFSInsufficientFundsError(
                "Insufficient funds: storage plan quota exhausted. "
                f"Top up at https://app.pinata.cloud/billing ({response.text})"
            )
        elif response.status_code == 403:
            raise IPFSAuthError(
                "Forbidden: Access denied. "
                "Check PINATA_JWT permissions (requires pinFileToIPFS access). "
                "Verify account status and quota limits at https://app.pinata.cloud/billing"
            )
        elif response.status_code == 400:
            raise IPFSValidationError(f"Bad request: {response.text}")

        response.raise_for_status()

    def resolve_uri(self, uri: str) -> str:
        """Map ipfs://<CID> to a gateway URL. Other URIs are returned unchanged."""
        if uri.startswith(IPFS_SCHEME):
            return self.get_gateway_url(uri[len(IPFS_SCHEME) :])
        return uri

    def get_gateway_url(self, cid: str) -> str:
        """Convert CID to gateway URL for browser access.

        Args:
            cid: IPFS CID

        Returns:
            Gateway URL (e.g., "https://gateway.pinata.cloud/ipfs/<CID>")
        """
        return f"https://{self.gateway_domain}/ipfs/{cid}"
