# utils/audit.py

import logging

from django.db import transaction

from utils.context import get_request_context

audit_logger = logging.getLogger("billing_audit")
logger = logging.getLogger(__name__)


def log_financial_activity(
    action,
    target_object=None,
    amount=None,
    company=None,
    notes=None,
    risk_level='LOW',
    additional_data=None,
    batch_id=None,
    is_automated=None,
):
    """
    Log financial activity for audit purposes using FinancialAuditLog.

    Args:
        action (str): Type of financial action (e.g., SETTLEMENT_COMPLETE).
        target_object (Model instance, optional): Object affected (BillingRecord, TransferIntent).
        amount (Decimal, optional): Amount involved in the action.
        company (Company instance, optional): Tenant the action concerns.
        notes (str, optional): Additional notes or comments.
        risk_level (str, optional): 'LOW', 'MEDIUM', 'HIGH' or 'CRITICAL'.
        additional_data (dict, optional): Extra context. Never put bank
            account numbers or credentials here.
        batch_id (str, optional): For grouping bulk operations.
        is_automated (bool, optional): Defaults to the request context flag.

    Audit failures are logged and never interrupt the financial operation.
    """
    from utils.models import FinancialAuditLog

    context = get_request_context() or {}
    user = context.get('user')
    if is_automated is None:
        is_automated = context.get('is_automated', False)

    company_code = getattr(company, 'code', None)

    audit_logger.info(
        f"{action} object={getattr(target_object, 'pk', None)} company={company_code} "
        f"amount={amount} batch={batch_id} request={context.get('request_id', '')}"
    )

    try:
        # Savepoint so a failed audit insert never poisons the caller's transaction
        with transaction.atomic():
            FinancialAuditLog.objects.create(
                action=action,
                user_id=str(user.pk) if user else None,
                ip_address=context.get('ip_address'),
                request_id=context.get('request_id', ''),
                object_type=target_object.__class__.__name__ if target_object is not None else '',
                object_id=str(target_object.pk) if target_object is not None else None,
                object_repr=str(target_object)[:255] if target_object is not None else '',
                amount_involved=amount,
                company_code=company_code,
                risk_level=risk_level,
                additional_data=additional_data or {},
                notes=notes,
                is_automated=is_automated,
                batch_id=batch_id,
            )
    except Exception as e:
        logger.error(f"Error in financial activity logging: {e}", exc_info=True)
