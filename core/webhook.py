"""Bundle notification webhook with bounded retries.

POSTs JSON with a shared-secret bearer header. Each attempt is bounded by a
request timeout; retryable failures back off 500ms, doubling up to 15s, plus
0-250ms of jitter.
"""

import json
import logging
import random
import time

import requests
from django.conf import settings

from .exceptions import WebhookError

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_MS = 500
MAX_BACKOFF_MS = 15000
MAX_JITTER_MS = 250
RETRYABLE_STATUSES = (408, 429)


def _retryable(status: int) -> bool:
	return status in RETRYABLE_STATUSES or 500 <= status <= 599


def redact_secret(secret: str | None) -> str:
	if not secret:
		return "(missing)"
	if len(secret) <= 8:
		return "********"
	return f"{secret[:2]}***{secret[-4:]}"


def send_webhook(payload: dict, *, timeout_ms: int | None = None, max_retries: int | None = None, url: str | None = None, secret: str | None = None, sleep=time.sleep) -> int:
	"""
	Deliver `payload`; returns the attempt number that succeeded.

	409 counts as success (the receiver already has this notification). Any other
	non-2xx outside 408/429/5xx fails immediately; exhausted retries raise WebhookError.
	"""
	url = url or settings.WEBHOOK_URL
	secret = secret or settings.WEBHOOK_SECRET
	timeout_ms = int(timeout_ms if timeout_ms is not None else settings.WEBHOOK_TIMEOUT_MS)
	max_retries = int(max_retries if max_retries is not None else settings.WEBHOOK_MAX_RETRIES)

	if not url or not secret:
		raise WebhookError("Missing WEBHOOK_URL or WEBHOOK_SECRET")

	body = json.dumps(payload)
	headers = {"Content-Type": "application/json", "Authorization": f"Bearer {secret}"}
	backoff_ms = INITIAL_BACKOFF_MS
	last_error = None

	for attempt in range(1, max_retries + 1):
		started = time.monotonic()
		logger.info("Webhook attempt %s/%s -> %s (payload %s bytes)", attempt, max_retries, url, len(body))
		try:
			res = requests.post(url, data=body, headers=headers, timeout=timeout_ms / 1000)
		except requests.Timeout as e:
			last_error = e
			logger.warning("Webhook attempt %s aborted after %sms - will retry", attempt, timeout_ms)
		except requests.RequestException as e:
			last_error = e
			logger.warning("Webhook attempt %s failed: %s - will retry", attempt, e)
		else:
			took = int((time.monotonic() - started) * 1000)
			status = res.status_code
			if 200 <= status < 300:
				logger.info("Webhook delivered in %sms (attempt %s)", took, attempt)
				return attempt
			if status == 409:
				logger.warning("Webhook got 409 (duplicate) - treating as success")
				return attempt
			msg = f"Webhook HTTP {status} in {took}ms. Body: {(res.text or '')[:1024] or '(empty)'}"
			if not _retryable(status):
				raise WebhookError(f"Non-retriable error: {msg}", status=status, attempts=attempt)
			last_error = WebhookError(msg, status=status)
			logger.warning("%s - will retry", msg)

		if attempt < max_retries:
			sleep((backoff_ms + random.randint(0, MAX_JITTER_MS)) / 1000)
			backoff_ms = min(backoff_ms * 2, MAX_BACKOFF_MS)

	logger.error(
		"Webhook failed; giving up (url=%s, secret=%s, attempts=%s, last_error=%s)",
		url, redact_secret(secret), max_retries, last_error,
	)
	raise WebhookError(f"Webhook failed after {max_retries} attempts: {last_error}", attempts=max_retries)
