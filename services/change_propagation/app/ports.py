"""
Collaborator interfaces consumed by the propagation handlers.

Handlers receive these through their constructors; concrete record-store
implementations are supplied by the deployment, blob/workflow/table
access is provided by the boto3 adapters in ``shared.storage``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from shared.schemas.models import (
    AdminAccount,
    AppConfig,
    AppPii,
    AppSummary,
    LicenseSummary,
    Student,
    UserConfig,
    UserNotificationCounter,
)
from shared.storage.dynamodb import ScanPage


class StudentStore(Protocol):
    async def get_students_by_license(self, license_id: str) -> List[Student]: ...

    async def update_license(
        self,
        student_id: str,
        license_id: str,
        license_details: LicenseSummary,
        archived: bool,
        tags: List[Any],
    ) -> None: ...

    async def get_student(self, student_id: str) -> Optional[Student]: ...

    async def remove_student_all(self, student_id: str) -> None: ...


class UserStore(Protocol):
    async def add_user_to_license(self, user_id: str, license_id: str) -> None: ...

    async def remove_user_from_license(self, user_id: str, license_id: str) -> None: ...

    async def get_admins_for_license(self, license_id: str) -> List[AdminAccount]: ...

    async def get_user_ids_by_email(self, email: str) -> List[str]: ...

    async def get_user_config(self, user_id: str) -> Optional[UserConfig]: ...

    async def update_user_event(
        self,
        user_id: str,
        entry: Optional[UserNotificationCounter],
        index: Optional[int],
        expected: Optional[UserNotificationCounter] = None,
    ) -> None:
        """Replace, append (``index`` None) or remove (``entry`` None) a counter.

        When ``expected`` is given the write only applies if the stored entry
        still equals it, and an append only applies if the user has no entry for
        the student yet; otherwise ``ConcurrentModificationError`` is raised.
        """
        ...


class AppStore(Protocol):
    async def get_apps_for_student(self, student_id: str) -> List[AppSummary]: ...

    async def get_app_config(self, student_id: str, app_id: str) -> Optional[AppConfig]: ...

    async def get_app_pii(self, student_id: str, app_id: str) -> Optional[AppPii]: ...

    async def update_app_config(self, config: AppConfig) -> None: ...

    async def update_app_pii(self, pii: AppPii) -> None: ...

    async def update_license(self, student_id: str, app_id: str, license_id: Optional[str]) -> None: ...


class BlobStore(Protocol):
    async def put_json(self, key: str, document: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


class TemplateEngine(Protocol):
    async def process_student_templates(
        self,
        student: Student,
        license_id: str,
        templates: Dict[str, List[Dict[str, Any]]],
    ) -> None: ...


class WorkflowOrchestrator(Protocol):
    async def start(self, workflow_id: str, input: Dict[str, Any]) -> str: ...


class PagedTable(Protocol):
    async def scan_page(
        self,
        start_key: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> ScanPage: ...

    async def query_partition(self, key_name: str, value: str) -> List[Dict[str, Any]]: ...
