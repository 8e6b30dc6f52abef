"""Submission orchestrator: validate, upload, share and notify."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..client.api_client import SavApiClient
from ..forms.store import ClaimFormStore
from ..models.claim import ImageAttachment
from ..models.upload import EncodedPayload, UploadDescriptor
from ..utils.errors import SavError, SubmissionError
from ..utils.logging import clear_context, set_context, with_context
from ..utils.sanitize import sanitize_folder_name
from .summary import build_webhook_payload

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """
    Outcome of a successful claim submission.

    Attributes:
        sav_dossier: Folder holding the uploaded files
        share_link: Share link of that folder
        payload: Payload posted to the webhook
        webhook_response: Webhook response body
        uploaded_urls: URLs of every uploaded file, in upload order
    """
    sav_dossier: str
    share_link: str
    payload: Dict[str, Any]
    webhook_response: Any
    uploaded_urls: List[str] = field(default_factory=list)


def build_sav_dossier(invoice: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """
    Name the storage folder of a claim session.

    Uses the invoice special mention (or invoice number) and a timestamp,
    e.g. ``SAV_585_25S30_94_1_20241001T120000``.
    """
    reference = invoice.get("special_mention") or invoice.get("invoice_number") or "CLIENT"
    stamp = (now or datetime.now()).strftime("%Y%m%dT%H%M%S")
    return sanitize_folder_name(f"SAV_{reference}_{stamp}") or f"SAV_{stamp}"


class SubmissionOrchestrator:
    """
    Drives the "submit all" step of the claim wizard.

    1. Collect and re-check the filled forms
    2. Upload every attached photo (and an optional report) in parallel
    3. Request the folder share link
    4. Post the final payload to the webhook

    The first unrecoverable failure is raised as a SubmissionError naming
    the failing phase.
    """

    def __init__(self, api_client: SavApiClient, store: ClaimFormStore):
        """
        Initialize the orchestrator.

        Args:
            api_client: Client for the storage proxy and webhook
            store: Form store of the current claim session
        """
        self.api_client = api_client
        self.store = store

    @with_context(component="submission")
    async def submit_all(
        self,
        invoice: Dict[str, Any],
        email: Optional[str] = None,
        report: Optional[EncodedPayload] = None,
        sav_dossier: Optional[str] = None
    ) -> SubmissionResult:
        """
        Submit every filled claim form.

        Args:
            invoice: Invoice data the claim refers to
            email: Customer e-mail entered in the wizard
            report: Optional generated report (base64) uploaded with the photos
            sav_dossier: Folder name override (default: build_sav_dossier)

        Returns:
            SubmissionResult; the caller can move to its confirmation state

        Raises:
            SubmissionError: With ``phase`` set to the failing step
        """
        filled = self.store.get_filled_forms()
        if not filled:
            raise SubmissionError.for_phase("validation", "Aucune réclamation à envoyer")

        invalid = [entry.index for entry in filled if not self.store.validate(entry.form)]
        if invalid:
            raise SubmissionError.for_phase(
                "validation",
                f"Réclamations incomplètes pour les lignes: {', '.join(str(i) for i in invalid)}",
                invalid_lines=invalid
            )

        sav_dossier = sav_dossier or build_sav_dossier(invoice)
        set_context(sav_dossier=sav_dossier)
        try:
            logger.info(f"Submitting {len(filled)} claim(s) to {sav_dossier}")

            targets: List[Tuple[Optional[ImageAttachment], UploadDescriptor]] = [
                (image, UploadDescriptor(image.source_file))
                for entry in filled
                for image in entry.form.images
            ]
            if report is not None:
                targets.append((None, UploadDescriptor(report)))

            outcomes = await self.api_client.upload_many(
                [descriptor for _, descriptor in targets],
                sav_dossier
            )

            report_url = None
            failed_names = []
            for (image, _), outcome in zip(targets, outcomes):
                if not outcome.succeeded:
                    failed_names.append(outcome.file_name)
                elif image is not None:
                    image.uploaded_url = outcome.url
                else:
                    report_url = outcome.url

            if failed_names:
                logger.error(f"{len(failed_names)}/{len(outcomes)} upload(s) failed for {sav_dossier}")
                raise SubmissionError.upload_failed(failed_names, len(outcomes))

            try:
                share_link = await self.api_client.get_folder_share_link(sav_dossier)
            except SavError as e:
                raise SubmissionError.for_phase(
                    "share_link",
                    f"Impossible de récupérer le lien de partage du dossier: {str(e)}",
                    error=e
                ) from e

            payload = build_webhook_payload(
                sav_dossier=sav_dossier,
                share_link=share_link,
                filled_forms=filled,
                invoice=invoice,
                email=email,
                report_url=report_url
            )

            try:
                webhook_response = await self.api_client.submit_sav_webhook(payload)
            except SavError as e:
                raise SubmissionError.for_phase(
                    "webhook",
                    f"Échec de l'envoi de la demande SAV: {str(e)}",
                    error=e
                ) from e

            logger.info(f"SAV claim {sav_dossier} submitted ({len(outcomes)} file(s))")
            return SubmissionResult(
                sav_dossier=sav_dossier,
                share_link=share_link,
                payload=payload,
                webhook_response=webhook_response,
                uploaded_urls=[outcome.url for outcome in outcomes]
            )
        finally:
            clear_context()
