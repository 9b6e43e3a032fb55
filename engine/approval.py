from typing import Any, Awaitable, Callable, Dict, Optional
from loguru import logger

from engine.state import ApprovalState, ApprovalStatus, ValidationResult
from engine.validator import validate_quote

FetchQuote = Callable[[str], Awaitable[Dict[str, Any]]]
SubmitQuote = Callable[[str], Awaitable[Any]]

class ApprovalWorkflow:
    """
    Gate a quote's submit-for-approval transition on its validation result.

    State moves LOADING -> READY | INVALID -> SUBMITTING -> SUBMITTED | FAILED.
    Only reload() and submit() change it. At most one gateway call is ever
    outstanding, and SUBMITTED is terminal.
    """

    def __init__(self, quote_id: str, fetch_quote: FetchQuote, submit_quote: SubmitQuote,
                 validator: Callable[[Dict[str, Any]], ValidationResult] = validate_quote):
        self.quote_id = quote_id
        self._fetch_quote = fetch_quote
        self._submit_quote = submit_quote
        self._validator = validator
        self._state = ApprovalState.loading()
        self._quote: Optional[Dict[str, Any]] = None
        self._in_flight = False
        self._load_generation = 0

    @property
    def state(self) -> ApprovalState:
        return self._state

    @property
    def quote(self) -> Optional[Dict[str, Any]]:
        return self._quote

    @property
    def submission_in_flight(self) -> bool:
        return self._in_flight

    async def reload(self) -> ApprovalState:
        """
        Fetch the quote and re-run validation.

        Ignored while a submission is in flight or once the quote is submitted.
        When reloads overlap, only the most recently started one is applied.
        """
        if self._in_flight or self._state.status is ApprovalStatus.SUBMITTED:
            logger.warning(f"Reload ignored for quote {self.quote_id} in state {self._state.status.value}")
            return self._state

        self._load_generation += 1
        generation = self._load_generation
        self._state = ApprovalState.loading()
        logger.info(f"Validating quote {self.quote_id}")

        try:
            quote = await self._fetch_quote(self.quote_id)
            result = self._validator(quote)
        except Exception as e:
            if generation != self._load_generation:
                return self._state
            error_msg = f"Error validating quote: {e}"
            logger.error(error_msg)
            self._quote = None
            self._state = ApprovalState.invalid([error_msg])
            return self._state

        if generation != self._load_generation:
            logger.info(f"Discarding stale validation for quote {self.quote_id}")
            return self._state

        self._quote = quote
        if result.is_valid:
            self._state = ApprovalState(ApprovalStatus.READY)
            logger.info(f"Quote {self.quote_id} is ready for submission")
        else:
            self._state = ApprovalState.invalid(result.errors)
            logger.info(f"Quote {self.quote_id} blocked by {len(result.errors)} validation error(s)")

        return self._state

    async def submit(self) -> bool:
        """
        Submit the quote for approval.

        Returns False without calling the gateway unless the workflow is READY
        and no submission is in flight.
        """
        if self._in_flight or self._state.status is not ApprovalStatus.READY:
            logger.warning(f"Submit ignored for quote {self.quote_id} in state {self._state.status.value}")
            return False

        self._in_flight = True
        self._state = ApprovalState(ApprovalStatus.SUBMITTING)
        logger.info(f"Submitting quote {self.quote_id} for approval")

        try:
            await self._submit_quote(self.quote_id)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Submission failed for quote {self.quote_id}: {message}")
            self._state = ApprovalState.failed(message)
        else:
            logger.info(f"Quote {self.quote_id} submitted for approval")
            self._state = ApprovalState(ApprovalStatus.SUBMITTED)
        finally:
            self._in_flight = False

        return True
