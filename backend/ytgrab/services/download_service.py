"""Per-request orchestration: resolve, select, then retrieve with fallback."""
import httpx

from ytgrab.core.config import Settings, settings
from ytgrab.core.logging import get_logger, safe_url
from ytgrab.models.media import (
    AudioTarget,
    MergeSpec,
    ResolvedMetadata,
    RetrievalDecision,
    RetrievalRequest,
    Strategy,
    Unavailable,
)
from ytgrab.services.companion import CompanionBinary
from ytgrab.services.errors import DownloadFailedError, FormatUnavailableError
from ytgrab.services.fallback import FallbackExhausted, Tier, first_success
from ytgrab.services.format_selector import select
from ytgrab.services.metadata import MetadataResolver, default_providers
from ytgrab.services.strategies import (
    DirectRedirect,
    ExtractorTranscode,
    LibraryTranscode,
    ProxyPassthrough,
    Retrieval,
    RetrievalStrategy,
)
from ytgrab.services.transcoder import Transcoder

logger = get_logger(__name__)


class DownloadService:
    """Owns the metadata chain and the retrieval tier ordering."""

    def __init__(
        self,
        resolver: MetadataResolver,
        *,
        redirect: RetrievalStrategy,
        proxy: RetrievalStrategy,
        library: RetrievalStrategy,
        extractor: RetrievalStrategy,
        config: Settings = settings,
    ) -> None:
        self.resolver = resolver
        self._redirect = redirect
        self._proxy = proxy
        self._library = library
        self._extractor = extractor
        self._config = config

    @classmethod
    def create(
        cls,
        client: httpx.AsyncClient,
        companion: CompanionBinary,
        config: Settings = settings,
    ) -> "DownloadService":
        """Build the production wiring around shared collaborators."""
        return cls(
            MetadataResolver(default_providers(companion)),
            redirect=DirectRedirect(),
            proxy=ProxyPassthrough(client, config),
            library=LibraryTranscode(Transcoder(config)),
            extractor=ExtractorTranscode(companion, config),
            config=config,
        )

    async def info(self, url: str) -> ResolvedMetadata:
        """Metadata for the info view; never raises."""
        return await self.resolver.resolve(url)

    async def decide(self, request: RetrievalRequest) -> tuple[ResolvedMetadata, RetrievalDecision]:
        """Resolve metadata and pick a decision.

        Raises:
            FormatUnavailableError: If the selector finds nothing usable
        """
        metadata = await self.resolver.resolve(request.canonical_url)
        outcome = select(metadata, request, redirect_enabled=self._config.FAST_REDIRECT)
        if isinstance(outcome, Unavailable):
            raise FormatUnavailableError(detail=outcome.reason)
        logger.info(
            f"Decision for {safe_url(request.canonical_url)} "
            f"format={request.requested_token}: {outcome.mode} via {outcome.strategy.value}"
        )
        return metadata, outcome

    def strategies_for(self, decision: RetrievalDecision) -> list[RetrievalStrategy]:
        """Strategies to attempt for ``decision``, in order."""
        direct = self._redirect if decision.strategy is Strategy.REDIRECT else self._proxy
        target = decision.target

        if isinstance(target, AudioTarget):
            head = [direct] if target.direct is not None else []
            return [*head, self._library, self._extractor]
        if isinstance(target, MergeSpec):
            if target.via_extractor:
                return [self._extractor]
            return [self._library, self._extractor]
        return [direct, self._library, self._extractor]

    async def retrieve(self, request: RetrievalRequest) -> tuple[RetrievalDecision, Retrieval]:
        """Run the fallback chain for ``request``.

        Raises:
            FormatUnavailableError: If no decision exists
            DownloadFailedError: If every strategy tier failed
        """
        metadata, decision = await self.decide(request)

        def _tier(strategy: RetrievalStrategy) -> Tier[RetrievalDecision, Retrieval]:
            async def run(d: RetrievalDecision) -> Retrieval:
                return await strategy.execute(d, request, metadata)

            return Tier(strategy.name, run)

        tiers = [_tier(s) for s in self.strategies_for(decision)]
        try:
            retrieval, tier = await first_success(tiers, decision, chain=f"retrieve:{decision.mode}")
        except FallbackExhausted as exc:
            message = "Audio conversion failed" if decision.mode == "audio" else "Video download failed"
            logger.error(f"{message} for {safe_url(request.canonical_url)}: {exc.summary()}")
            raise DownloadFailedError(message, exc.summary())

        logger.info(f"Serving {retrieval.filename} via {tier.name}")
        return decision, retrieval
