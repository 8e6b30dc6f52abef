"""Claim form store: per-line form state, validation and lifecycle."""

import logging
import math
from typing import Callable, Dict, List, Optional

from ..models.claim import (
    ClaimForm,
    ClaimReason,
    FilledForm,
    IMAGES_REQUIRED,
    QUANTITY_NOT_POSITIVE,
    QUANTITY_REQUIRED,
    REASON_REQUIRED,
    UNIT_REQUIRED,
    empty_errors,
)

logger = logging.getLogger(__name__)

# notify(message, level) where level is "success" or "error"
Notifier = Callable[[str, str], None]

TOAST_MISSING_PHOTO = "Veuillez ajouter au moins une photo du produit abîmé"
TOAST_MISSING_FIELDS = "Veuillez remplir tous les champs requis"
TOAST_SAVED = "Réclamation enregistrée pour cette ligne"
TOAST_EDITABLE = "Réclamation modifiable à nouveau"


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_number(value) -> Optional[float]:
    """Parse a quantity into a real number, or None when it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _notify(notify: Optional[Notifier], message: str, level: str) -> None:
    if notify:
        notify(message, level)


class ClaimFormStore:
    """
    Owns one ClaimForm per invoice line item for a claim session.

    Forms are created lazily on first access and memoized by index: the same
    index always returns the same ClaimForm instance. Forms are reset, never
    dropped, for the lifetime of the store.

    Per-form states:
        - empty: no record yet
        - open-unfilled: record exists, ``filled`` is False
        - open-filled: ``validate_item_form`` succeeded
    """

    def __init__(self):
        self._forms: Dict[int, ClaimForm] = {}

    def __len__(self) -> int:
        return len(self._forms)

    def __contains__(self, index: int) -> bool:
        return index in self._forms

    @property
    def forms(self) -> Dict[int, ClaimForm]:
        """Read-only view of the forms created so far."""
        return dict(self._forms)

    def get_form(self, index: int) -> ClaimForm:
        """
        Get or create the form for an invoice line.

        Args:
            index: Invoice line index

        Returns:
            The memoized ClaimForm for this index
        """
        form = self._forms.get(index)
        if form is None:
            form = ClaimForm()
            self._forms[index] = form
            logger.debug(f"Created claim form for line {index}")
        return form

    @property
    def has_filled_forms(self) -> bool:
        """True if at least one shown form is filled."""
        return any(form.shown and form.filled for form in self._forms.values())

    @property
    def has_unfinished_forms(self) -> bool:
        """True if at least one shown form is not filled yet."""
        return any(form.shown and not form.filled for form in self._forms.values())

    @staticmethod
    def validate(form: ClaimForm) -> bool:
        """
        Validate a claim form and recompute all of its errors.

        Every rule runs; all violated fields are reported together.

        Args:
            form: Form to validate (``form.errors`` is replaced)

        Returns:
            True if no field produced an error message
        """
        errors = empty_errors()

        if _is_missing(form.quantity):
            errors["quantity"] = QUANTITY_REQUIRED
        else:
            quantity = _as_number(form.quantity)
            if quantity is None or quantity <= 0:
                errors["quantity"] = QUANTITY_NOT_POSITIVE

        if _is_missing(form.unit):
            errors["unit"] = UNIT_REQUIRED

        if _is_missing(form.reason) or form.reason not in ClaimReason.values():
            errors["reason"] = REASON_REQUIRED

        if form.reason == ClaimReason.ABIME.value and not form.images:
            errors["images"] = IMAGES_REQUIRED

        form.errors = errors
        return not any(errors.values())

    def toggle_form(self, index: int) -> ClaimForm:
        """
        Open a closed form, or close (and reset) an open one.

        Args:
            index: Invoice line index

        Returns:
            The form after toggling
        """
        form = self.get_form(index)
        if form.shown:
            self.delete_form(index)
        else:
            form.shown = True
        return form

    def validate_item_form(self, index: int, notify: Optional[Notifier] = None) -> bool:
        """
        Validate a line's form and lock it as filled when valid.

        A call made while the same form is already being validated is a no-op.

        Args:
            index: Invoice line index
            notify: Optional callback receiving (message, level) toasts

        Returns:
            True if the form is now filled
        """
        form = self.get_form(index)
        if form.loading:
            logger.debug(f"Validation already running for line {index}, skipping")
            return False

        form.loading = True
        try:
            if not self.validate(form):
                if form.errors["images"]:
                    _notify(notify, TOAST_MISSING_PHOTO, "error")
                else:
                    _notify(notify, TOAST_MISSING_FIELDS, "error")
                return False

            form.filled = True
            form.shown = True
            logger.info(f"Claim line {index} filled (reason={form.reason}, images={len(form.images)})")
            _notify(notify, TOAST_SAVED, "success")
            return True
        finally:
            form.loading = False

    def edit_form(self, index: int, notify: Optional[Notifier] = None) -> ClaimForm:
        """Unlock a filled form for editing; field values are kept."""
        form = self.get_form(index)
        form.filled = False
        _notify(notify, TOAST_EDITABLE, "success")
        return form

    def delete_form(self, index: int) -> ClaimForm:
        """
        Reset a line's form to its initial empty state.

        The record itself is kept, so ``get_form(index)`` keeps returning the
        same instance.
        """
        form = self.get_form(index)
        form.reset()
        return form

    def get_filled_forms(self) -> List[FilledForm]:
        """
        Collect the shown, filled forms.

        Returns:
            FilledForm entries in ascending index order
        """
        return [
            FilledForm(form=form, index=index)
            for index, form in sorted(self._forms.items())
            if form.shown and form.filled
        ]
