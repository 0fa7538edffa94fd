# billing/bank_client.py

"""
Client for the external bank transfer service.

Every request carries the transfer intent's idempotency key, so retrying
with the same key never moves money twice. Timeouts, connection errors
and 5xx responses are retried with backoff; 4xx responses are final.
"""

from django.conf import settings
import logging
import time

import httpx

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class TransferError(Exception):
    """Base class for transfer service failures."""

    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class TransferRejected(TransferError):
    """The bank refused the request (4xx). Never retried."""


class TransferServiceError(TransferError):
    """The service kept failing (5xx or unreachable). Nothing was transferred."""


class TransferOutcomeUnknown(TransferError):
    """A request timed out; the transfer may or may not have happened."""


# =============================================================================
# CLIENT
# =============================================================================

class BankTransferClient:
    """
    Synchronous httpx client for the bank API.

    Args default to the BANK_API_* Django settings. ``transport`` and
    ``sleep`` are for tests.
    """

    def __init__(self, base_url=None, api_key=None, timeout=None, max_retries=None,
                 retry_delays=None, transport=None, sleep=time.sleep):
        self.base_url = (base_url or settings.BANK_API_BASE_URL).rstrip('/')
        self.max_retries = settings.BANK_API_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delays = list(
            settings.BANK_API_RETRY_DELAYS if retry_delays is None else retry_delays
        ) or [0.0]
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout or settings.BANK_API_TIMEOUT, connect=5.0),
            headers={
                'Authorization': f"Bearer {api_key or settings.BANK_API_KEY}",
                'Content-Type': 'application/json',
                'Accept': 'application/json',
            },
            transport=transport,
        )

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # -------------------------------------------------------------------------
    # OPERATIONS
    # -------------------------------------------------------------------------

    def bulk_transfer(self, transfers, idempotency_key):
        """
        Submit one batch of transfers.

        Args:
            transfers (list): dicts with amount, bankName, branchCode,
                accountNumber, recipientName, description
            idempotency_key: key of the transfer intent

        Returns:
            dict: bank response, e.g. {'batchId': ..., 'status': 'COMPLETED'}
        """
        return self._request('POST', '/transfers', idempotency_key, json={'transfers': transfers})

    def withdraw(self, withdrawal, idempotency_key):
        """
        Debit one tenant account.

        Returns:
            dict: bank response, including 'transactionId'
        """
        return self._request('POST', '/withdrawal', idempotency_key, json=withdrawal)

    def get_transfer(self, idempotency_key):
        """
        Look a transfer up by idempotency key.

        Returns:
            dict: with 'status' COMPLETED, FAILED, PENDING or NOT_FOUND
        """
        try:
            return self._request('GET', f'/transfers/{idempotency_key}', idempotency_key)
        except TransferRejected as e:
            if e.status_code == 404:
                return {'status': 'NOT_FOUND'}
            raise

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------

    def _delay(self, attempt):
        return self.retry_delays[min(attempt, len(self.retry_delays) - 1)]

    def _request(self, method, path, idempotency_key, json=None):
        attempts = self.max_retries + 1
        outcome_unknown = False
        last_error = None
        last_status = None

        for attempt in range(attempts):
            try:
                response = self._client.request(
                    method,
                    path,
                    json=json,
                    headers={'Idempotency-Key': str(idempotency_key)},
                )
            except httpx.ConnectTimeout as e:
                last_error = f"connect timeout: {e}"
            except httpx.TimeoutException as e:
                outcome_unknown = True
                last_error = f"timeout: {e}"
            except httpx.RequestError as e:
                last_error = f"connection error: {e.__class__.__name__}"
            else:
                last_status = response.status_code
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError:
                        logger.warning(f"Bank {method} {path} returned a non-JSON body")
                        return {}
                if response.status_code < 500:
                    logger.error(
                        f"Bank rejected {method} {path} "
                        f"(key={idempotency_key}): HTTP {response.status_code}"
                    )
                    raise TransferRejected(
                        f"transfer rejected with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                last_error = f"HTTP {response.status_code}"

            logger.warning(
                f"Bank {method} {path} attempt {attempt + 1}/{attempts} failed "
                f"(key={idempotency_key}): {last_error}"
            )
            if attempt < attempts - 1:
                self._sleep(self._delay(attempt))

        if outcome_unknown:
            raise TransferOutcomeUnknown(f"transfer outcome unknown: {last_error}")
        raise TransferServiceError(f"transfer service unavailable: {last_error}", status_code=last_status)
