"""
Example: Checking usernames and emails against a slow backend

This example shows the async validation strategies working together the
way a signup form uses them: debouncing keystrokes, bounding lookups with
a timeout, retrying a flaky service, cancelling stale checks, and tracing
every layer through the standard logging module.
"""

import asyncio
import logging
import random

from valora import (
    AsyncValidator,
    LoggingHook,
    RetryPolicy,
    ValidationContext,
    async_validator,
    use_tracing,
)

logging.basicConfig(level=logging.DEBUG, format="%(name)s %(message)s")
logger = logging.getLogger("valora.example")


# =============================================================================
# Fake backend
# =============================================================================

TAKEN_USERNAMES = {"admin", "root", "alice"}
REGISTERED_EMAILS = {"alice@example.com"}


async def username_exists(username: str) -> bool:
    await asyncio.sleep(0.05)
    return username.lower() in TAKEN_USERNAMES


async def flaky_email_lookup(email: str) -> bool:
    """Fails about half the time, like a service under load."""
    await asyncio.sleep(0.02)
    if random.random() < 0.5:
        raise ConnectionError("email service unavailable")
    return email.lower() in REGISTERED_EMAILS


# =============================================================================
# 1. Debounce + timeout: one lookup per typing burst
# =============================================================================


async def username_available(username, ctx):
    return not await username_exists(username)


username_check = (
    AsyncValidator(username_available, error="Username {value} is taken")
    .debounce(0.3)
    .timeout(5.0)
)


async def simulate_typing():
    print("\n== Typing 'admin' one key at a time ==")
    calls = []
    for partial in ("a", "ad", "adm", "admi", "admin"):
        calls.append(asyncio.ensure_future(username_check.validate_async(partial)))
        await asyncio.sleep(0.1)

    results = await asyncio.gather(*calls)
    for partial, result in zip(("a", "ad", "adm", "admi", "admin"), results):
        print(f"  {partial!r:8} -> {result.messages or 'ok'}")


# =============================================================================
# 2. Retry: ride out a flaky service
# =============================================================================


def log_retry(attempt, error, delay):
    logger.warning("attempt %d failed (%s), retrying in %.2fs", attempt, error, delay)


@async_validator(error="{value} is already registered")
async def email_unique(email, ctx):
    return not await flaky_email_lookup(email)


email_check = email_unique.retry(
    RetryPolicy(max_attempts=5, initial_delay=0.05, max_delay=0.5, on_retry=log_retry)
).timeout(3.0)


async def check_emails():
    print("\n== Email uniqueness with retries ==")
    for email in ("bob@example.com", "alice@example.com"):
        ctx = ValidationContext(path=["user", "email"], field="email")
        result = await email_check.validate_async(email, ctx)
        if result:
            print(f"  {email}: ok")
        else:
            error = result.errors[0]
            print(f"  {email}: {error.code} at {'.'.join(error.path)}: {error.message}")


# =============================================================================
# 3. Cancellation: the user navigated away
# =============================================================================


async def cancel_pending_check():
    print("\n== Cancelling a pending check ==")
    task = asyncio.ensure_future(username_check.validate_async("bob"))
    await asyncio.sleep(0.1)
    print(f"  pending before cancel: {username_check.is_pending()}")
    username_check.cancel()
    result = await task
    print(f"  pending after cancel: {username_check.is_pending()}")
    print(f"  result: {result.errors[0].code} ({result.messages[0]})")


# =============================================================================
# 4. Tracing every layer
# =============================================================================


async def traced_check():
    print("\n== Traced check ==")
    with use_tracing(LoggingHook(logger)):
        await username_check.validate_async("carol")


async def main():
    await simulate_typing()
    await check_emails()
    await cancel_pending_check()
    await traced_check()


if __name__ == "__main__":
    asyncio.run(main())
