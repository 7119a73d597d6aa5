"""ACME client for certificate issuance."""

from datetime import UTC, datetime
from typing import Any

import anyio
import anyio.to_thread
import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from certflow._logging import Timer, domain_context, get_logger, log_extra
from certflow.account import AccountStore, MemoryAccountStore, StoredAccount
from certflow.challenges.base import ChallengePublisher
from certflow.challenges.dns01 import dns01_material
from certflow.challenges.http01 import http01_material
from certflow.config import DEFAULT_PROVIDER, ClientSettings, resolve_directory_url
from certflow.crypto import (
    base64url_encode,
    create_csr,
    generate_rsa_key,
    load_private_key_pem,
    private_key_to_pem,
)
from certflow.directory import NonceManager
from certflow.exceptions import (
    AccountCreationFailed,
    AcmeError,
    BadNonceError,
    CertificateDownloadFailed,
    ChallengeTimeout,
    ChallengeValidationFailed,
    NonceUnavailable,
    OrderError,
    OrderFailed,
    OrderTimeout,
    SigningError,
    TransportError,
    UnsupportedChallengeType,
)
from certflow.jws import sign_jws
from certflow.models import (
    Authorization,
    AuthorizationStatus,
    CertificateBundle,
    Challenge,
    ChallengeMaterial,
    ChallengeStatus,
    ChallengeType,
    Directory,
    Order,
    OrderStatus,
    PendingCertificate,
)
from certflow.validation import normalize_method, validate_domain

logger = get_logger(__name__)


class AcmeClient:
    """Async ACME v2 client for one certificate flow.

    The client owns its HTTP connection pool, replay nonce, account key and
    account URL. Signed requests are serialized so the single nonce is
    consumed in request order; run independent flows on separate clients.

    Args:
        provider: CA provider name (see ``certflow.config.CA_DIRECTORIES``)
                  or an ACME directory URL.
        identity: Tenant/session identifier scoping the stored account.
        account_key: Account key to use instead of the stored/generated one.
        account_store: Where account keys and URLs are kept.
        settings: Polling and key-size settings.
        ca_cert: Path to CA certificate file, False to disable verification,
                 or None/True for default verification.
    """

    def __init__(
        self,
        provider: str = DEFAULT_PROVIDER,
        *,
        identity: str = "default",
        account_key: rsa.RSAPrivateKey | None = None,
        account_store: AccountStore | None = None,
        settings: ClientSettings | None = None,
        ca_cert: str | bool | None = None,
    ):
        self.provider = provider
        self.identity = identity
        self.directory_url = resolve_directory_url(provider)
        self.settings = settings or ClientSettings()
        self.account_store = account_store or MemoryAccountStore()

        verify = True if ca_cert is None else ca_cert
        self._http = httpx.AsyncClient(verify=verify, timeout=self.settings.http_timeout)
        self._nonces = NonceManager(self._http, self.directory_url)
        self._request_lock = anyio.Lock()
        self._key_lock = anyio.Lock()

        self._account_url: str | None = None
        self._account_key = self._load_account(account_key)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "AcmeClient":
        await self.initialize()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Directory, nonce and signed requests
    # ------------------------------------------------------------------

    async def initialize(self) -> Directory:
        """Fetch the ACME directory (once per client) and make sure an account key exists."""
        directory = await self._nonces.initialize()
        await self._ensure_account_key()
        return directory

    @property
    def directory(self) -> Directory:
        """The ACME directory; requires initialize()."""
        return self._nonces.directory

    @property
    def account_key(self) -> rsa.RSAPrivateKey:
        """The account private key.

        Raises:
            SigningError: If no key was given or stored and initialize()
                has not generated one yet.
        """
        if self._account_key is None:
            raise SigningError(detail="No account key yet; call initialize() first")
        return self._account_key

    @property
    def account_url(self) -> str | None:
        """The account URL (known after ensure_account())."""
        return self._account_url

    async def current_nonce(self) -> str:
        """Return the held replay nonce, fetching one if needed."""
        return await self._nonces.current_nonce()

    async def _signed_request(
        self,
        url: str,
        payload: dict[str, Any] | str,
        use_kid: bool = True,
    ) -> httpx.Response:
        """Make a JWS-signed POST request to the ACME server.

        Args:
            url: The endpoint URL.
            payload: The request payload (dict for JSON, "" for POST-as-GET).
            use_kid: If True, use kid (account URL) in JWS header.
                     If False, use jwk (for new account registration).

        Returns:
            The HTTP response (2xx).

        Raises:
            SigningError: If no nonce could be obtained.
            TransportError: On network failure.
            AcmeError: If the ACME server returns an error.
        """
        async with self._request_lock:
            return await self._send_signed(url, payload, use_kid, retry_bad_nonce=True)

    async def _send_signed(
        self,
        url: str,
        payload: dict[str, Any] | str,
        use_kid: bool,
        retry_bad_nonce: bool,
    ) -> httpx.Response:
        try:
            nonce = await self._nonces.consume()
        except (NonceUnavailable, TransportError) as e:
            raise SigningError.wrap(e, detail=f"Cannot sign request for {url}: {e.detail}") from e

        kid = self._account_url if use_kid else None
        jws = sign_jws(
            key=self.account_key,
            payload=payload,
            url=url,
            nonce=nonce,
            kid=kid,
        )

        try:
            with Timer() as t:
                response = await self._http.post(
                    url,
                    json=jws.model_dump(),
                    headers={"Content-Type": "application/jose+json"},
                )
        except httpx.HTTPError as e:
            raise TransportError(detail=f"Request to {url} failed: {e}") from e

        # A consumed nonce is never reusable, so take the next one even from errors
        self._nonces.update_from_response(response)

        logger.debug(
            "ACME request",
            extra=log_extra(url=url, status_code=response.status_code, elapsed_ms=t.elapsed_ms),
        )

        if response.is_success:
            return response

        error = self._problem(response)
        if isinstance(error, BadNonceError) and retry_bad_nonce:
            logger.info("Retrying after badNonce", extra=log_extra(url=url))
            return await self._send_signed(url, payload, use_kid, retry_bad_nonce=False)
        raise error

    @staticmethod
    def _problem(response: httpx.Response) -> AcmeError:
        """Turn an error response into an AcmeError.

        JSON bodies (application/problem+json) are parsed as problem
        documents; anything else is kept as opaque text.
        """
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                return AcmeError.from_response(
                    data,
                    response.status_code,
                    headers=dict(response.headers),
                )
        return AcmeError(
            detail=response.text or f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def _load_account(self, account_key: rsa.RSAPrivateKey | None) -> rsa.RSAPrivateKey | None:
        """Resolve the account key and any stored account URL.

        Returns None when there is neither a given nor a stored key;
        initialize() then generates one.
        """
        stored = self.account_store.load(self.provider, self.identity)

        if account_key is None:
            if stored is not None:
                self._account_url = stored.account_url
                return load_private_key_pem(stored.key_pem)
            return None

        key_pem = private_key_to_pem(account_key)
        if stored is not None and stored.key_pem == key_pem:
            self._account_url = stored.account_url
        else:
            self.account_store.save(self.provider, self.identity, StoredAccount(key_pem=key_pem))
        return account_key

    async def _ensure_account_key(self) -> rsa.RSAPrivateKey:
        """Generate and store an account key if the client has none yet."""
        async with self._key_lock:
            if self._account_key is None:
                with Timer() as t:
                    key = await anyio.to_thread.run_sync(
                        generate_rsa_key, self.settings.account_key_size
                    )
                self.account_store.save(
                    self.provider, self.identity, StoredAccount(key_pem=private_key_to_pem(key))
                )
                self._account_key = key
                logger.info(
                    "Generated account key",
                    extra={
                        "provider": self.provider,
                        "identity": self.identity,
                        "elapsed_ms": t.elapsed_ms,
                    },
                )
            return self._account_key

    async def ensure_account(self, email: str | None = None) -> str:
        """Register an account, or reuse the one stored for this identity.

        A stored account URL is returned without contacting the CA. Otherwise
        newAccount is called; for a key the CA already knows it returns the
        existing account.

        Args:
            email: Contact email address (optional).

        Returns:
            The account URL.

        Raises:
            AccountCreationFailed: If the CA rejects the request or sends no
                account URL.
        """
        if self._account_url:
            logger.debug("Reusing stored account", extra={"account_url": self._account_url})
            return self._account_url

        await self.initialize()

        payload: dict[str, Any] = {
            "termsOfServiceAgreed": True,
        }
        if email:
            payload["contact"] = [f"mailto:{email}"]

        try:
            response = await self._signed_request(
                self.directory.new_account,
                payload,
                use_kid=False,  # New accounts use jwk, not kid
            )
        except (SigningError, TransportError):
            raise
        except AcmeError as e:
            raise AccountCreationFailed.wrap(e) from e

        account_url = response.headers.get("Location")
        if not account_url:
            raise AccountCreationFailed(
                detail="newAccount response has no Location header",
                status_code=response.status_code,
            )

        self._account_url = account_url
        self.account_store.save(
            self.provider,
            self.identity,
            StoredAccount(key_pem=private_key_to_pem(self.account_key), account_url=account_url),
        )
        logger.info(
            "Account ready",
            extra={"account_url": account_url, "provider": self.provider, "identity": self.identity},
        )
        return account_url

    # ------------------------------------------------------------------
    # Orders, authorizations and challenges
    # ------------------------------------------------------------------

    async def create_order(self, domain: str) -> tuple[Order, str]:
        """Create a new certificate order for one domain.

        Returns:
            The Order resource and its URL.
        """
        payload = {"identifiers": [{"type": "dns", "value": domain}]}

        response = await self._signed_request(self.directory.new_order, payload)
        order = Order.model_validate(response.json())

        order_url = response.headers.get("Location")
        if not order_url:
            raise OrderError(
                detail="newOrder response has no Location header",
                status_code=response.status_code,
            )

        logger.info(
            "Order created",
            extra=log_extra(order_url=order_url, status=order.status),
        )
        return order, order_url

    async def get_authorization(self, authz_url: str) -> Authorization:
        """Fetch an authorization with POST-as-GET."""
        response = await self._signed_request(authz_url, "")
        return Authorization.model_validate(response.json())

    @staticmethod
    def select_challenge(
        authorization: Authorization, method: str | ChallengeType
    ) -> Challenge:
        """Get the challenge matching a verification method.

        Args:
            authorization: The authorization containing challenges.
            method: "http-01"/"dns-01" or a front-end alias.

        Raises:
            UnsupportedChallengeType: If the CA offers no such challenge.
        """
        challenge_type = normalize_method(method)
        for challenge in authorization.challenges:
            if challenge.type == challenge_type:
                return challenge
        raise UnsupportedChallengeType(
            detail=(
                f"Challenge type '{challenge_type}' not offered for "
                f"{authorization.identifier.value}"
            )
        )

    def challenge_material(self, challenge: Challenge) -> ChallengeMaterial:
        """Compute what must be published for a challenge.

        Never cache the result across orders: each order has a fresh token.
        """
        if challenge.type == ChallengeType.HTTP_01:
            return http01_material(challenge, self.account_key)
        if challenge.type == ChallengeType.DNS_01:
            return dns01_material(challenge, self.account_key)
        raise UnsupportedChallengeType(detail=f"No material for challenge type '{challenge.type}'")

    async def trigger_challenge(self, challenge: Challenge) -> Challenge:
        """Tell the CA to start validating a challenge (POST ``{}``)."""
        response = await self._signed_request(challenge.url, {})
        logger.info(
            "Challenge triggered",
            extra=log_extra(challenge_url=challenge.url, type=challenge.type),
        )
        return Challenge.model_validate(response.json())

    async def poll_challenge(
        self,
        challenge_url: str,
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> Challenge:
        """Poll a challenge until it is valid or invalid.

        Each attempt waits the full interval before querying.

        Raises:
            ChallengeValidationFailed: If the challenge becomes invalid.
            ChallengeTimeout: If attempts run out.
        """
        max_attempts = self.settings.poll_max_attempts if max_attempts is None else max_attempts
        interval = self.settings.poll_interval if interval is None else interval

        for attempt in range(1, max_attempts + 1):
            await anyio.sleep(interval)

            response = await self._signed_request(challenge_url, "")
            challenge = Challenge.model_validate(response.json())

            logger.debug(
                "Challenge status",
                extra=log_extra(
                    challenge_url=challenge_url, status=challenge.status, attempt=attempt
                ),
            )

            if challenge.status == ChallengeStatus.VALID:
                logger.info("Challenge valid", extra=log_extra(challenge_url=challenge_url))
                return challenge
            if challenge.status == ChallengeStatus.INVALID:
                error = challenge.error or {}
                raise ChallengeValidationFailed(
                    detail=error.get("detail", "Challenge validation failed"),
                    type=error.get("type"),
                    status_code=error.get("status"),
                    subproblems=error.get("subproblems"),
                )

        raise ChallengeTimeout(
            detail=f"Challenge {challenge_url} not validated after {max_attempts} attempts"
        )

    async def poll_order(
        self,
        order_url: str,
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> Order:
        """Poll an order until it is valid (certificate issued) or invalid.

        Raises:
            OrderFailed: If the order becomes invalid.
            OrderTimeout: If attempts run out.
        """
        max_attempts = self.settings.poll_max_attempts if max_attempts is None else max_attempts
        interval = self.settings.poll_interval if interval is None else interval

        for attempt in range(1, max_attempts + 1):
            await anyio.sleep(interval)

            response = await self._signed_request(order_url, "")
            order = Order.model_validate(response.json())

            logger.debug(
                "Order status",
                extra=log_extra(order_url=order_url, status=order.status, attempt=attempt),
            )

            if order.status == OrderStatus.VALID:
                return order
            if order.status == OrderStatus.INVALID:
                error = order.error or {}
                raise OrderFailed(
                    detail=error.get("detail", "Order is invalid"),
                    type=error.get("type"),
                    status_code=error.get("status"),
                    subproblems=error.get("subproblems"),
                )

        raise OrderTimeout(detail=f"Order {order_url} not valid after {max_attempts} attempts")

    # ------------------------------------------------------------------
    # Finalization and certificate retrieval
    # ------------------------------------------------------------------

    async def finalize_order(self, finalize_url: str, csr_b64: str) -> Order:
        """Finalize an order by submitting a base64url DER CSR."""
        response = await self._signed_request(finalize_url, {"csr": csr_b64})
        return Order.model_validate(response.json())

    async def download_certificate(self, certificate_url: str) -> str:
        """Download the issued certificate chain.

        Returns:
            The PEM chain exactly as served (leaf first).

        Raises:
            CertificateDownloadFailed: If the download fails.
        """
        try:
            response = await self._signed_request(certificate_url, "")
        except SigningError:
            raise
        except AcmeError as e:
            raise CertificateDownloadFailed.wrap(e) from e
        return response.text

    # ------------------------------------------------------------------
    # End-to-end flow
    # ------------------------------------------------------------------

    @staticmethod
    def _reused_challenge(authorization: Authorization, method: ChallengeType) -> Challenge:
        """Pick the challenge that validated a reused authorization.

        A reused authorization may only list the challenge the CA last
        validated, which need not be of the requested type. The requested
        type wins when it is listed.
        """
        validated = [
            challenge
            for challenge in authorization.challenges
            if challenge.status == ChallengeStatus.VALID and challenge.type in tuple(ChallengeType)
        ]
        for challenge in validated:
            if challenge.type == method:
                return challenge
        if validated:
            return validated[0]
        return AcmeClient.select_challenge(authorization, method)

    async def begin_certificate(
        self,
        domain: str,
        method: str | ChallengeType,
        email: str | None = None,
    ) -> PendingCertificate:
        """Start a certificate request and return the challenge material.

        The caller publishes ``pending.material`` and then calls
        complete_certificate(). The material belongs to this order only;
        starting over means a new order and new material.

        When the CA reuses a valid authorization, ``pending.already_validated``
        is set and nothing needs publishing.
        """
        challenge_type = normalize_method(method)
        domain = validate_domain(domain, challenge_type)

        with domain_context(domain):
            await self.initialize()
            await self.ensure_account(email)

            order, order_url = await self.create_order(domain)
            if not order.authorizations:
                raise OrderError(detail=f"Order {order_url} has no authorizations")

            authorization = await self.get_authorization(order.authorizations[0])
            if authorization.status == AuthorizationStatus.VALID:
                challenge = self._reused_challenge(authorization, challenge_type)
                logger.info(
                    "Reusing valid authorization",
                    extra=log_extra(order_url=order_url, type=challenge.type),
                )
            else:
                challenge = self.select_challenge(authorization, challenge_type)
            material = self.challenge_material(challenge)

            logger.info(
                "Challenge material ready",
                extra=log_extra(order_url=order_url, type=challenge.type),
            )
            return PendingCertificate(
                domain=domain,
                provider=self.provider,
                method=ChallengeType(challenge.type),
                order=order,
                order_url=order_url,
                authorization=authorization,
                challenge=challenge,
                material=material,
            )

    async def complete_certificate(self, pending: PendingCertificate) -> CertificateBundle:
        """Validate, finalize and download the certificate for a pending request.

        Returns:
            Certificate chain and domain key as PEM.
        """
        with domain_context(pending.domain):
            if not pending.already_validated:
                await self.trigger_challenge(pending.challenge)
                await self.poll_challenge(pending.challenge.url)

            with Timer() as t:
                domain_key = await anyio.to_thread.run_sync(
                    generate_rsa_key, self.settings.domain_key_size
                )
            logger.debug(
                "Generated domain key",
                extra=log_extra(key_size=self.settings.domain_key_size, elapsed_ms=t.elapsed_ms),
            )

            csr_der = create_csr(domain_key, pending.domain)
            await self.finalize_order(pending.order.finalize, base64url_encode(csr_der))

            order = await self.poll_order(pending.order_url)
            if not order.certificate:
                raise OrderFailed(detail=f"Order {pending.order_url} is valid but has no certificate URL")

            certificate_pem = await self.download_certificate(order.certificate)

            logger.info("Certificate issued", extra=log_extra(provider=self.provider))
            return CertificateBundle(
                certificate_pem=certificate_pem,
                private_key_pem=private_key_to_pem(domain_key),
                domain=pending.domain,
                provider=pending.provider,
                issued_at=datetime.now(UTC),
            )

    async def obtain_certificate(
        self,
        domain: str,
        method: str | ChallengeType,
        publisher: ChallengePublisher,
        email: str | None = None,
    ) -> CertificateBundle:
        """Obtain a certificate, publishing challenge material automatically.

        This is the main high-level method that:
        1. Creates an order and computes the challenge material
        2. Publishes it through ``publisher`` (skipped for a reused authorization)
        3. Validates, finalizes and downloads the certificate
        4. Removes the published material
        """
        pending = await self.begin_certificate(domain, method, email=email)
        if pending.already_validated:
            return await self.complete_certificate(pending)

        await publisher.publish(pending.domain, pending.material)
        try:
            return await self.complete_certificate(pending)
        finally:
            try:
                await publisher.cleanup(pending.domain, pending.material)
            except Exception:
                logger.warning(
                    "Challenge cleanup failed",
                    exc_info=True,
                    extra={"domain": pending.domain},
                )
