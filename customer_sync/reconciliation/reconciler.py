"""
Customer Reconciler

Sequences writes to the account store (core2 `users`) and the profile store
(core1 `customers`). The two databases cannot share a transaction, so each
write commits locally and the result reports per-store success. A write that
landed in one store is never compensated when the other fails.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import bcrypt

from customer_sync.auth import MANAGE_BOOKINGS, MANAGE_CUSTOMERS, RequestContext
from customer_sync.errors import StoreError, ValidationError
from customer_sync.reconciliation.results import Outcome, ReconcileResult, StoreWrite
from customer_sync.reconciliation.validation import (
    CustomerUpdate,
    TRANSITION_STATUSES,
    parse_user_id,
    validate_coordinates,
)
from customer_sync.stores.account_store import AccountStore
from customer_sync.stores.fields import FieldSet
from customer_sync.stores.profile_store import ProfileStore

logger = logging.getLogger(__name__)

STATUS_AUDIT_ACTION = "customer_status_update"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def presence_for_account_status(account_status: str) -> str:
    """Collapse account status to presence: active -> online, anything else -> offline."""
    return "online" if account_status == "active" else "offline"


class CustomerReconciler:
    """
    Keeps a customer's account row and profile row in step.

    Args:
        accounts: Account store adapter (core2)
        profiles: Profile store adapter (core1)
        image_store: Profile image collaborator with `store(...)` and `discard(...)` methods
        audit: Audit collaborator with a `record(...)` method
        metrics: Optional SyncMetrics
        clock: Returns the current time for created_at/updated_at
        password_hasher: Turns a plain password into the stored hash
    """

    def __init__(
        self,
        accounts: AccountStore,
        profiles: ProfileStore,
        image_store=None,
        audit=None,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
        password_hasher: Callable[[str], str] = hash_password
    ):
        self.accounts = accounts
        self.profiles = profiles
        self.image_store = image_store
        self.audit = audit
        self.metrics = metrics
        self._clock = clock
        self._hash_password = password_hasher

    # ------------------------------------------------------------------
    # Full update (account + profile)
    # ------------------------------------------------------------------

    def update_customer(
        self,
        context: RequestContext,
        update: CustomerUpdate,
        image: Optional[bytes] = None
    ) -> ReconcileResult:
        """
        Update a customer's account row, then update or create the profile row.

        Args:
            context: Caller; must hold manage_customers
            update: Validated field set
            image: Optional raw bytes of a new profile picture

        Returns:
            ReconcileResult; PARTIAL_FAILURE when only one store was written
        """
        context.require(MANAGE_CUSTOMERS)
        user_id = update.user_id

        try:
            owner = self.accounts.find_email_owner(update.email, user_id)
        except StoreError as e:
            result = ReconcileResult(
                Outcome.FAILURE,
                f"Update failed: {e}",
                writes=[StoreWrite(self.accounts.name, "check", False, error=e.detail)]
            )
            return self._finish_update(result)

        if owner is not None:
            logger.info(f"Rejected update of user {user_id}: email owned by user {owner}")
            result = ReconcileResult.conflict(
                "Email address is already in use by another user.",
                code="duplicate_email",
                field="email"
            )
            return self._finish_update(result)

        advisories: Dict[str, str] = {}
        picture = None
        if image:
            picture = self._store_image(update, image, advisories)

        account_write = self._write_account(update, picture)
        if account_write.action == "missing":
            if picture:
                self.image_store.discard(picture)
            result = ReconcileResult.not_found("Customer not found or is not a customer account.")
            return self._finish_update(result)

        profile_write = self._write_profile(update, picture)

        # the picture path is written to both rows
        if picture and not (account_write.ok or profile_write.ok):
            self.image_store.discard(picture)
            picture = None

        result = self._compose(
            [account_write, profile_write],
            success_message="Customer updated successfully.",
            failure_prefix="Update failed:"
        )
        result.advisories.update(advisories)
        if picture:
            result.data["profile_picture"] = picture

        return self._finish_update(result)

    def _store_image(self, update: CustomerUpdate, image: bytes, advisories: Dict[str, str]) -> Optional[str]:
        if self.image_store is None:
            advisories["profile_picture_error"] = "Image uploads are not configured."
            return None

        stored = self.image_store.store(
            image,
            subject_kind="customer",
            subject_id=update.user_id,
            name_hints={"firstname": update.firstname, "lastname": update.lastname}
        )
        if not stored.ok:
            logger.warning(f"Profile image for user {update.user_id} not stored: {stored.reason}")
            advisories["profile_picture_error"] = stored.reason
            return None

        return stored.stored_filename

    def _write_account(self, update: CustomerUpdate, picture: Optional[str]) -> StoreWrite:
        fields = FieldSet({
            "firstname": update.firstname,
            "lastname": update.lastname,
            "email": update.email,
            "phone": update.phone,
            "status": update.account_status,
        })
        fields.set_if_present("profile_picture", picture)
        if update.password:
            fields.set("password", self._hash_password(update.password))

        conn = self.accounts.connection
        conn.begin()
        try:
            rowcount = self.accounts.update_customer(update.user_id, fields)
            if rowcount == 0 and not self.accounts.customer_exists(update.user_id):
                conn.rollback()
                return StoreWrite(self.accounts.name, "missing", False)
            conn.commit()
            return StoreWrite(self.accounts.name, "update", True, rowcount=rowcount)
        except StoreError as e:
            conn.rollback()
            return StoreWrite(self.accounts.name, "update", False, error=e.detail)

    def _write_profile(self, update: CustomerUpdate, picture: Optional[str]) -> StoreWrite:
        now = self._clock()
        fields = FieldSet({
            "address": update.address,
            "city": update.city,
            "state": update.state,
            "zip": update.zip,
            "status": update.presence_status,
        })
        fields.set_if_present("profile_picture", picture)

        conn = self.profiles.connection
        conn.begin()
        action = "lookup"
        try:
            customer_id = self.profiles.find_customer_id(update.user_id)
            if customer_id is not None:
                action = "update"
                rowcount = self.profiles.update_by_user(update.user_id, fields.set("updated_at", now))
            else:
                action = "insert"
                row = FieldSet({"user_id": update.user_id}).merged(fields)
                row.set("created_at", now).set("updated_at", now)
                rowcount = self.profiles.insert(row)
            conn.commit()
            return StoreWrite(self.profiles.name, action, True, rowcount=rowcount)
        except StoreError as e:
            conn.rollback()
            return StoreWrite(self.profiles.name, action, False, error=e.detail)

    def _finish_update(self, result: ReconcileResult) -> ReconcileResult:
        if self.metrics:
            self.metrics.record_customer_update(result.outcome.value)
            for store in result.failed_stores:
                self.metrics.record_store_failure(store)

        log = logger.info if result.success else logger.warning
        log(f"Customer update finished: {result.outcome.value}", extra={"outcome": result.outcome.value})
        return result

    # ------------------------------------------------------------------
    # Status transition
    # ------------------------------------------------------------------

    def change_account_status(self, context: RequestContext, user_id: Any, status: Any) -> ReconcileResult:
        """
        Set a customer's account status and mirror it as presence.

        The account step is transactional (existence check + update). The
        presence upsert and the audit entry follow separately; an audit
        failure is reported as an advisory only.
        """
        context.require(MANAGE_CUSTOMERS)

        try:
            user_id = parse_user_id(user_id)
        except ValidationError as e:
            result = ReconcileResult.rejected("Invalid customer ID.", field=e.field)
            return self._finish_transition(result, None)

        status = str(status or "").strip().lower()
        if status not in TRANSITION_STATUSES:
            result = ReconcileResult.rejected(
                'Invalid status value. Status must be "active" or "inactive".', field="status"
            )
            return self._finish_transition(result, None)

        conn = self.accounts.connection
        conn.begin()
        try:
            if not self.accounts.customer_exists(user_id):
                conn.rollback()
                result = ReconcileResult.not_found("Customer not found or is not a customer account.")
                return self._finish_transition(result, status)

            rowcount = self.accounts.set_status(user_id, status)
            if rowcount == 0:
                conn.rollback()
                result = ReconcileResult(Outcome.FAILURE, "No changes made to customer status.")
                return self._finish_transition(result, status)

            conn.commit()
            account_write = StoreWrite(self.accounts.name, "update", True, rowcount=rowcount)
        except StoreError as e:
            conn.rollback()
            result = ReconcileResult(
                Outcome.FAILURE,
                f"Status update failed: {e}",
                writes=[StoreWrite(self.accounts.name, "update", False, error=e.detail)]
            )
            return self._finish_transition(result, status)

        presence = presence_for_account_status(status)
        profile_write = self._write_presence(user_id, presence)

        result = self._compose(
            [account_write, profile_write],
            success_message=f"Customer status has been updated successfully to {status.capitalize()}.",
            failure_prefix="Status update failed:"
        )
        result.data.update(status=status, presence_status=presence)

        if self.audit is not None:
            recorded = self.audit.record(
                context.user_id,
                STATUS_AUDIT_ACTION,
                f"Customer ID: {user_id} status changed to {status}",
                context.source_ip
            )
            if not recorded:
                result.advisories["audit_error"] = "Audit record could not be written."

        return self._finish_transition(result, status)

    def _write_presence(self, user_id: int, presence: str) -> StoreWrite:
        now = self._clock()
        conn = self.profiles.connection
        conn.begin()
        action = "lookup"
        try:
            if self.profiles.find_customer_id(user_id) is not None:
                action = "update"
                rowcount = self.profiles.update_by_user(
                    user_id, FieldSet({"status": presence, "updated_at": now})
                )
            else:
                action = "insert"
                rowcount = self.profiles.insert(FieldSet({
                    "user_id": user_id,
                    "status": presence,
                    "created_at": now,
                    "updated_at": now,
                }))
            conn.commit()
            return StoreWrite(self.profiles.name, action, True, rowcount=rowcount)
        except StoreError as e:
            conn.rollback()
            return StoreWrite(self.profiles.name, action, False, error=e.detail)

    def _finish_transition(self, result: ReconcileResult, status: Optional[str]) -> ReconcileResult:
        if self.metrics:
            self.metrics.record_status_transition(status or "invalid", result.outcome.value)
            for store in result.failed_stores:
                self.metrics.record_store_failure(store)
        logger.info(f"Status transition to {status} finished: {result.outcome.value}")
        return result

    # ------------------------------------------------------------------
    # Location update and detail read
    # ------------------------------------------------------------------

    def update_location(
        self,
        context: RequestContext,
        customer_id: Any,
        latitude: Any,
        longitude: Any
    ) -> ReconcileResult:
        """Set a profile's coordinates and location timestamp by customer_id."""
        context.require(MANAGE_BOOKINGS)

        try:
            customer_id = parse_user_id(customer_id, field_name="customer_id")
            lat, lng = validate_coordinates(latitude, longitude)
        except ValidationError as e:
            return ReconcileResult.rejected(str(e), field=e.field)

        conn = self.profiles.connection
        conn.begin()
        try:
            rowcount = self.profiles.update_location(customer_id, lat, lng, self._clock())
            conn.commit()
        except StoreError as e:
            conn.rollback()
            return ReconcileResult(
                Outcome.FAILURE,
                f"Location update failed: {e}",
                writes=[StoreWrite(self.profiles.name, "update", False, error=e.detail)]
            )

        if rowcount == 0:
            return ReconcileResult.not_found("Customer not found or no changes made")

        return ReconcileResult(
            Outcome.SUCCESS,
            "Customer location updated successfully",
            writes=[StoreWrite(self.profiles.name, "update", True, rowcount=rowcount)],
            data={"customer_id": customer_id, "latitude": lat, "longitude": lng}
        )

    def get_customer_details(self, context: RequestContext, user_id: Any) -> ReconcileResult:
        """
        Combined account + profile view used to fill the edit form.

        Either half may be missing; the other half is still returned with a
        warning. Legacy merged addresses come back already split.
        """
        context.require(MANAGE_CUSTOMERS)

        try:
            user_id = parse_user_id(user_id)
        except ValidationError as e:
            return ReconcileResult.rejected(str(e), field=e.field)

        warnings: List[str] = []
        try:
            account = self.accounts.get_customer(user_id)
        except StoreError as e:
            logger.error(f"Account lookup failed for user {user_id}: {e}")
            account = None
            warnings.append(f"{self.accounts.name}: {e.detail}")

        try:
            profile = self.profiles.get_by_user(user_id)
        except StoreError as e:
            logger.error(f"Profile lookup failed for user {user_id}: {e}")
            profile = None
            warnings.append(f"{self.profiles.name}: {e.detail}")

        if account is None and profile is None:
            if warnings:
                return ReconcileResult(Outcome.FAILURE, "Could not load customer.", data={"warnings": warnings})
            return ReconcileResult.not_found("Customer not found.")

        if account is None:
            warnings.append("Customer account not found.")
        if profile is None:
            warnings.append("Customer profile not found; saving will create it.")

        customer: Dict[str, Any] = {"user_id": user_id}
        if profile:
            profile = dict(profile)
            customer["presence_status"] = profile.pop("status", None)
            customer.update(profile)
        if account:
            account = dict(account)
            customer["account_status"] = account.pop("status", None)
            customer.update(account)

        data: Dict[str, Any] = {"customer": customer}
        if warnings:
            data["warnings"] = warnings
        return ReconcileResult(Outcome.SUCCESS, "Customer loaded.", data=data)

    # ------------------------------------------------------------------

    def _compose(
        self,
        writes: List[StoreWrite],
        success_message: str,
        failure_prefix: str
    ) -> ReconcileResult:
        failed = [write for write in writes if not write.ok]

        if not failed:
            return ReconcileResult(Outcome.SUCCESS, success_message, writes=writes)

        details = " ".join(f"[{write.store}] {write.error}" for write in failed)
        outcome = Outcome.FAILURE if len(failed) == len(writes) else Outcome.PARTIAL_FAILURE
        return ReconcileResult(outcome, f"{failure_prefix} {details}", writes=writes)
