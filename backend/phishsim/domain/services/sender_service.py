"""
Sender Service
Management of email types and the email accounts campaigns send from
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phishsim.domain.models.sender import (
    EmailAccountCreate,
    EmailAccountResponse,
    EmailAccountUpdate,
    EmailTypeCreate,
    EmailTypeResponse,
    EmailTypeUpdate,
)
from phishsim.infrastructure.storage.models import Campaign, EmailAccount, EmailType

logger = logging.getLogger(__name__)


class SenderValidationError(Exception):
    """Raised when an email type or account request is invalid"""
    pass


class SenderConflictError(Exception):
    """Raised when a value or address is already taken, or a row is still in use"""
    pass


class SenderNotFoundError(Exception):
    """Raised when an email type or account does not exist"""

    def __init__(self, entity: str, reference: str = ""):
        self.entity = entity
        self.reference = reference
        super().__init__(f"{entity} not found")


class SenderService:
    """
    Email type and email account management.

    Sender identities are shared reference data: every campaign owner resolves
    senders from the same pool.
    """

    def __init__(self, session: Session):
        self.session = session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    # =========================================================================
    # Email types
    # =========================================================================

    def list_email_types(self, include_inactive: bool = False) -> List[EmailTypeResponse]:
        query = self.session.query(EmailType)
        if not include_inactive:
            query = query.filter(EmailType.is_active.is_(True))
        rows = query.order_by(EmailType.sort_order, EmailType.display_name).all()
        return [EmailTypeResponse.model_validate(row) for row in rows]

    def _get_email_type(self, type_id: int) -> EmailType:
        email_type = self.session.get(EmailType, type_id)
        if email_type is None:
            raise SenderNotFoundError("Email type", str(type_id))
        return email_type

    def get_email_type(self, type_id: int) -> EmailTypeResponse:
        return EmailTypeResponse.model_validate(self._get_email_type(type_id))

    def validate_email_type(self, value: str) -> None:
        """A sender may only use a known, active type."""
        email_type = self.session.query(EmailType).filter(EmailType.value == value).first()
        if email_type is None:
            raise SenderValidationError("invalid email type")
        if not email_type.is_active:
            raise SenderValidationError("email type is not active")

    @staticmethod
    def _check_type_fields(request: EmailTypeCreate) -> None:
        if not request.value.strip():
            raise SenderValidationError("type value is required")
        if not request.display_name.strip():
            raise SenderValidationError("display name is required")

    def create_email_type(self, request: EmailTypeCreate) -> EmailTypeResponse:
        self._check_type_fields(request)
        value = request.value.strip()
        if self.session.query(EmailType.id).filter(EmailType.value == value).first() is not None:
            raise SenderConflictError("Email type with this value already exists")

        email_type = EmailType(
            value=value,
            display_name=request.display_name.strip(),
            description=request.description,
            is_active=request.is_active,
            sort_order=request.sort_order,
        )
        self.session.add(email_type)
        self._commit()
        logger.info(f"Created email type '{value}'")
        return EmailTypeResponse.model_validate(email_type)

    def update_email_type(self, type_id: int, request: EmailTypeUpdate) -> EmailTypeResponse:
        if request.id is not None and request.id != type_id:
            raise SenderValidationError("ID mismatch")
        self._check_type_fields(request)
        email_type = self._get_email_type(type_id)

        value = request.value.strip()
        if value != email_type.value:
            conflict = (
                self.session.query(EmailType.id)
                .filter(EmailType.value == value, EmailType.id != type_id)
                .first()
            )
            if conflict is not None:
                raise SenderConflictError("value already in use by another type")
            # Accounts reference the type by value
            if self._accounts_using(email_type.value):
                raise SenderConflictError("cannot rename type: it is being used by email accounts")

        email_type.value = value
        email_type.display_name = request.display_name.strip()
        email_type.description = request.description
        email_type.is_active = request.is_active
        email_type.sort_order = request.sort_order
        self._commit()
        return EmailTypeResponse.model_validate(email_type)

    def _accounts_using(self, value: str) -> int:
        return self.session.query(EmailAccount).filter(EmailAccount.email_type == value).count()

    def delete_email_type(self, type_id: int) -> None:
        email_type = self._get_email_type(type_id)
        if self._accounts_using(email_type.value):
            raise SenderConflictError("cannot delete type: it is being used by email accounts")
        self.session.delete(email_type)
        self._commit()
        logger.info(f"Deleted email type '{email_type.value}'")

    # =========================================================================
    # Email accounts
    # =========================================================================

    def list_email_accounts(self) -> List[EmailAccountResponse]:
        rows = (
            self.session.query(EmailAccount)
            .order_by(EmailAccount.created_at.desc(), EmailAccount.id.desc())
            .all()
        )
        return [EmailAccountResponse.model_validate(row) for row in rows]

    def _get_email_account(self, account_id: int) -> EmailAccount:
        account = self.session.get(EmailAccount, account_id)
        if account is None:
            raise SenderNotFoundError("Email account", str(account_id))
        return account

    def get_email_account(self, account_id: int) -> EmailAccountResponse:
        return EmailAccountResponse.model_validate(self._get_email_account(account_id))

    def get_email_account_by_type(self, email_type: str) -> EmailAccountResponse:
        """First active account of a type, the one campaign creation would pick."""
        account = (
            self.session.query(EmailAccount)
            .filter(EmailAccount.email_type == email_type, EmailAccount.is_active.is_(True))
            .order_by(EmailAccount.id)
            .first()
        )
        if account is None:
            raise SenderNotFoundError("Email account", email_type)
        return EmailAccountResponse.model_validate(account)

    def _check_account_fields(self, request: EmailAccountCreate) -> None:
        if not request.email.strip():
            raise SenderValidationError("email address is required")
        if not request.email_type.strip():
            raise SenderValidationError("email type is required")
        self.validate_email_type(request.email_type.strip())

    def generate_credential_name(self, email_type: str) -> str:
        """Next "<type>-<n>" name after the highest one already used for the type."""
        prefix = f"{email_type}-"
        highest = 0
        names = (
            self.session.query(EmailAccount.credential_name)
            .filter(EmailAccount.email_type == email_type)
            .all()
        )
        for (name,) in names:
            suffix = (name or "")[len(prefix):] if (name or "").startswith(prefix) else ""
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1}"

    def create_email_account(self, request: EmailAccountCreate) -> EmailAccountResponse:
        self._check_account_fields(request)
        email = request.email.strip()
        if self.session.query(EmailAccount.id).filter(EmailAccount.email == email).first() is not None:
            raise SenderConflictError("Email account already exists")

        email_type = request.email_type.strip()
        account = EmailAccount(
            email=email,
            email_type=email_type,
            credential_id=request.credential_id,
            credential_name=self.generate_credential_name(email_type),
            is_active=request.is_active,
            usage_count=0,
        )
        self.session.add(account)
        self._commit()
        logger.info(f"Created email account {email} ({account.credential_name})")
        return EmailAccountResponse.model_validate(account)

    def update_email_account(self, account_id: int, request: EmailAccountUpdate) -> EmailAccountResponse:
        if request.id is not None and request.id != account_id:
            raise SenderValidationError("ID mismatch")
        self._check_account_fields(request)
        account = self._get_email_account(account_id)

        email = request.email.strip()
        if email != account.email:
            conflict = (
                self.session.query(EmailAccount.id)
                .filter(EmailAccount.email == email, EmailAccount.id != account_id)
                .first()
            )
            if conflict is not None:
                raise SenderConflictError("email address already in use by another account")

        account.email = email
        account.email_type = request.email_type.strip()
        account.credential_id = request.credential_id
        if request.credential_name is not None:
            account.credential_name = request.credential_name
        account.is_active = request.is_active
        account.updated_at = datetime.utcnow()
        self._commit()
        return EmailAccountResponse.model_validate(account)

    def delete_email_account(self, account_id: int) -> None:
        account = self._get_email_account(account_id)
        in_use = self.session.query(Campaign.id).filter(Campaign.email_account_id == account_id).first()
        if in_use is not None:
            raise SenderConflictError("cannot delete email account: it is used by campaigns, deactivate it instead")
        self.session.delete(account)
        self._commit()
        logger.info(f"Deleted email account {account.email}")
