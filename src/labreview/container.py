from __future__ import annotations

import logging
from typing import Optional

import httpx

from labreview.config import Settings, settings
from labreview.domain.models.user import Identity
from labreview.infra.auth.gotrue import GoTrueSessionStore
from labreview.infra.auth.session_store import InMemoryIdentityDirectory, InMemorySessionStore, SessionStore
from labreview.infra.db.bootstrap import build_repositories
from labreview.infra.db.repositories import Repositories
from labreview.infra.functions.invoker import FunctionInvoker, HttpFunctionInvoker
from labreview.infra.functions.local import LocalFunctionInvoker
from labreview.infra.storage.pdf import LocalPdfStorageBackend, PdfStorageBackend
from labreview.services.audit.service import AuditService
from labreview.services.auth.profiles import ProfileRegistrar, RoleResolver
from labreview.services.auth.session_manager import AuthSessionManager
from labreview.services.biomarkers.panel import FunctionalPanelService
from labreview.services.dashboard.notifications import NotificationService
from labreview.services.dashboard.service import DashboardService
from labreview.services.interpretation.backends import get_interpretation_backend, get_pdf_text_extractor
from labreview.services.review.service import ReviewWorkflowController
from labreview.services.upload.service import UploadWorkflowController

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Owns every long-lived collaborator of the application.

    Per-request objects (session managers, workflow controllers) are built
    from it with the caller's access token.
    """

    def __init__(
        self,
        *,
        config: Settings,
        repositories: Repositories,
        http_client: httpx.AsyncClient,
        storage: PdfStorageBackend,
        audit: AuditService,
        identity_directory: Optional[InMemoryIdentityDirectory] = None,
        invoker: Optional[FunctionInvoker] = None,
    ) -> None:
        self.config = config
        self.repositories = repositories
        self.http_client = http_client
        self.storage = storage
        self.audit = audit
        self.identity_directory = identity_directory

        self.resolver = RoleResolver(repositories.doctors, repositories.patients)
        self.registrar = ProfileRegistrar(repositories.doctors, repositories.patients)
        self.dashboards = DashboardService(repositories)
        self.notifications = NotificationService(repositories.notifications)
        self.functional_panel = FunctionalPanelService(repositories)
        self.invoker = invoker if invoker is not None else self._build_invoker()

    def _use_gotrue(self) -> bool:
        return self.config.session_backend.lower() == "gotrue"

    def _require_hosted_backend(self) -> None:
        if not self.config.supabase_url or not self.config.supabase_anon_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for hosted backends")

    def _build_invoker(self) -> FunctionInvoker:
        if self.config.functions_backend.lower() == "http":
            self._require_hosted_backend()
            return HttpFunctionInvoker(
                self.http_client,
                base_url=self.config.supabase_url,
                anon_key=self.config.supabase_anon_key,
            )
        return LocalFunctionInvoker(
            self.repositories,
            storage=self.storage,
            extractor=get_pdf_text_extractor(self.config),
            interpreter=get_interpretation_backend(self.config),
            audit=self.audit,
            identity_for_token=self.identity_for_token,
        )

    def session_store(self, access_token: Optional[str] = None) -> SessionStore:
        if self._use_gotrue():
            self._require_hosted_backend()
            return GoTrueSessionStore(
                self.http_client,
                base_url=self.config.supabase_url,
                anon_key=self.config.supabase_anon_key,
                access_token=access_token,
            )
        if self.identity_directory is None:
            self.identity_directory = InMemoryIdentityDirectory()
        return InMemorySessionStore(self.identity_directory, access_token=access_token)

    async def identity_for_token(self, access_token: str) -> Optional[Identity]:
        return await self.session_store(access_token).get_current_user()

    def auth_session(self, access_token: Optional[str] = None) -> AuthSessionManager:
        return AuthSessionManager(self.session_store(access_token), self.resolver, self.registrar)

    def review_controller(self, access_token: Optional[str] = None) -> ReviewWorkflowController:
        return ReviewWorkflowController(self.repositories, self.invoker, access_token=access_token)

    def upload_controller(self, access_token: Optional[str] = None) -> UploadWorkflowController:
        return UploadWorkflowController(
            self.repositories,
            self.invoker,
            max_upload_bytes=self.config.max_upload_bytes,
            access_token=access_token,
        )

    async def aclose(self) -> None:
        try:
            await self.invoker.aclose()
        finally:
            await self.http_client.aclose()


def build_container(
    config: Settings = settings,
    *,
    repositories: Optional[Repositories] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    """Build the container from settings.

    ``repositories`` and ``http_client`` can be injected by tests.
    """

    container = ServiceContainer(
        config=config,
        repositories=repositories if repositories is not None else build_repositories(config),
        http_client=http_client if http_client is not None else httpx.AsyncClient(timeout=config.remote_timeout_seconds),
        storage=LocalPdfStorageBackend(config.pdf_upload_dir),
        audit=AuditService(),
        identity_directory=None if config.session_backend.lower() == "gotrue" else InMemoryIdentityDirectory(),
    )
    logger.info(
        "Service container ready (session=%s, functions=%s)",
        config.session_backend,
        config.functions_backend,
    )
    return container
