import pytest
import asyncio
import os
import sys
from datetime import date, datetime
from unittest.mock import AsyncMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from engine.state import ApprovalState, ApprovalStatus, ValidationResult
from engine.validator import validate_quote
from engine.approval import ApprovalWorkflow

TODAY = date(2026, 3, 1)

def valid_quote(**overrides):
    quote = {
        "id": "0Q0xx0000004C92",
        "account_id": "001xx000003DGb2",
        "status": "Draft",
        "expiration_date": "2026-06-30",
        "line_items": [{"product": "Platform licence", "quantity": 10}],
        "total_price": 12000.0,
    }
    quote.update(overrides)
    return quote

def fixed_validator(*errors):
    return lambda quote: ValidationResult(errors=tuple(errors))

class TestValidator:
    """Test quote validation rules."""

    def test_valid_quote(self):
        result = validate_quote(valid_quote(), today=TODAY)

        assert result.is_valid
        assert result.errors == ()

    def test_missing_line_items(self):
        result = validate_quote(valid_quote(line_items=[]), today=TODAY)

        assert result.errors == ("Missing line items",)
        assert not result.is_valid

    def test_expired_quote(self):
        assert validate_quote(valid_quote(expiration_date="2026-02-28"), today=TODAY).errors == ("Quote has expired",)
        assert validate_quote(valid_quote(expiration_date="2026-03-01"), today=TODAY).is_valid
        assert validate_quote(valid_quote(expiration_date=datetime(2025, 1, 1, 9, 0)), today=TODAY).errors == ("Quote has expired",)

    def test_invalid_expiration_date(self):
        result = validate_quote(valid_quote(expiration_date="not-a-date"), today=TODAY)

        assert result.errors == ("Quote expiration date is invalid",)

    def test_expiration_date_of_unexpected_type(self):
        for expires in (20260101, {"date": "2026-01-01"}, ["2026-01-01"]):
            result = validate_quote(valid_quote(expiration_date=expires), today=TODAY)

            assert result.errors == ("Quote expiration date is invalid",)

    def test_non_positive_total(self):
        assert validate_quote(valid_quote(total_price=0), today=TODAY).errors == ("Quote total must be greater than zero",)
        assert validate_quote(valid_quote(total_price="abc"), today=TODAY).errors == ("Quote total must be greater than zero",)

    def test_already_submitted(self):
        result = validate_quote(valid_quote(status="In Review"), today=TODAY)

        assert result.errors == ("Quote has already been submitted for approval",)

    def test_every_error_is_reported_in_order(self):
        quote = {
            "validation_errors": ["Discount exceeds approval threshold"],
            "line_items": [],
            "expiration_date": "2025-12-31",
        }
        result = validate_quote(quote, today=TODAY)

        assert result.errors == (
            "Discount exceeds approval threshold",
            "Quote must be linked to an account",
            "Missing line items",
            "Quote has expired",
        )

    def test_custom_rules(self):
        result = validate_quote({}, today=TODAY, rules=[lambda quote, today: "Custom rule"])

        assert result.errors == ("Custom rule",)

class TestApprovalState:
    """Test the approval state view."""

    def test_submit_enabled_only_when_ready(self):
        for status in ApprovalStatus:
            assert ApprovalState(status).submit_enabled == (status is ApprovalStatus.READY)

    def test_error_message_joins_errors(self):
        state = ApprovalState.invalid(["Missing line items", "Quote has expired"])

        assert state.error_message == "Missing line items Quote has expired"
        assert state.to_dict()["errors"] == ["Missing line items", "Quote has expired"]
        assert state.to_dict()["status"] == "invalid"

class TestApprovalWorkflow:
    """Test the quote approval state machine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.fetch_quote = AsyncMock(return_value=valid_quote())
        self.submit_quote = AsyncMock(return_value={"status": "Submitted"})

    def make_workflow(self, validator=None):
        return ApprovalWorkflow(
            "0Q0xx0000004C92",
            fetch_quote=self.fetch_quote,
            submit_quote=self.submit_quote,
            validator=validator or fixed_validator(),
        )

    def test_starts_loading(self):
        workflow = self.make_workflow()

        assert workflow.state == ApprovalState.loading()
        assert asyncio.run(workflow.submit()) is False
        self.submit_quote.assert_not_called()

    def test_ready_submit_submitted(self):
        workflow = self.make_workflow()

        state = asyncio.run(workflow.reload())
        assert state.status is ApprovalStatus.READY
        assert workflow.quote == valid_quote()
        self.fetch_quote.assert_awaited_once_with("0Q0xx0000004C92")

        assert asyncio.run(workflow.submit()) is True
        assert workflow.state.status is ApprovalStatus.SUBMITTED

        # Submitted is terminal
        assert asyncio.run(workflow.submit()) is False
        asyncio.run(workflow.reload())
        assert workflow.state.status is ApprovalStatus.SUBMITTED
        self.submit_quote.assert_awaited_once_with("0Q0xx0000004C92")
        assert self.fetch_quote.await_count == 1

    def test_state_is_submitting_while_gateway_call_is_pending(self):
        observed = []

        async def scenario():
            release = asyncio.Event()

            async def slow_submit(quote_id):
                observed.append(workflow.state.status)
                await release.wait()

            self.submit_quote.side_effect = slow_submit
            await workflow.reload()
            task = asyncio.create_task(workflow.submit())
            await asyncio.sleep(0)
            observed.append(workflow.submission_in_flight)
            release.set()
            await task

        workflow = self.make_workflow()
        asyncio.run(scenario())

        assert observed == [ApprovalStatus.SUBMITTING, True]
        assert workflow.state.status is ApprovalStatus.SUBMITTED
        assert workflow.submission_in_flight is False

    def test_invalid_blocks_submit(self):
        workflow = self.make_workflow(validator=fixed_validator("Missing line items"))

        state = asyncio.run(workflow.reload())

        assert state == ApprovalState.invalid(["Missing line items"])
        assert asyncio.run(workflow.submit()) is False
        assert workflow.state.errors == ("Missing line items",)
        self.submit_quote.assert_not_called()

    def test_fetch_failure_becomes_invalid(self):
        self.fetch_quote.side_effect = Exception("Quote not found")
        workflow = self.make_workflow()

        state = asyncio.run(workflow.reload())

        assert state.status is ApprovalStatus.INVALID
        assert state.errors == ("Error validating quote: Quote not found",)
        assert workflow.quote is None

    def test_validator_failure_becomes_invalid(self):
        def broken(quote):
            raise ValueError("bad quote payload")

        workflow = self.make_workflow(validator=broken)
        state = asyncio.run(workflow.reload())

        assert state.errors == ("Error validating quote: bad quote payload",)

    def test_gateway_failure(self):
        self.submit_quote.side_effect = Exception("Timeout")
        workflow = self.make_workflow()

        asyncio.run(workflow.reload())
        assert asyncio.run(workflow.submit()) is True

        assert workflow.state == ApprovalState.failed("Timeout")
        assert asyncio.run(workflow.submit()) is False
        self.submit_quote.assert_awaited_once()

    def test_reload_after_failure_allows_new_submission(self):
        self.submit_quote.side_effect = [Exception("Timeout"), {"status": "Submitted"}]
        workflow = self.make_workflow()

        asyncio.run(workflow.reload())
        asyncio.run(workflow.submit())
        assert workflow.state.status is ApprovalStatus.FAILED

        asyncio.run(workflow.reload())
        assert workflow.state.status is ApprovalStatus.READY
        asyncio.run(workflow.submit())

        assert workflow.state.status is ApprovalStatus.SUBMITTED
        assert self.submit_quote.await_count == 2

    def test_duplicate_submits_call_gateway_once(self):
        async def scenario():
            release = asyncio.Event()

            async def slow_submit(quote_id):
                await release.wait()
                return {"status": "Submitted"}

            self.submit_quote.side_effect = slow_submit
            await workflow.reload()

            first = asyncio.create_task(workflow.submit())
            await asyncio.sleep(0)
            duplicates = await asyncio.gather(workflow.submit(), workflow.submit(), workflow.reload())
            release.set()
            return await first, duplicates

        workflow = self.make_workflow()
        first, duplicates = asyncio.run(scenario())

        assert first is True
        assert duplicates[:2] == [False, False]
        assert duplicates[2].status is ApprovalStatus.SUBMITTING
        assert workflow.state.status is ApprovalStatus.SUBMITTED
        self.submit_quote.assert_awaited_once()

    def test_gathered_submits_from_ready_call_gateway_once(self):
        async def scenario():
            await workflow.reload()
            return await asyncio.gather(workflow.submit(), workflow.submit())

        workflow = self.make_workflow()
        results = asyncio.run(scenario())

        assert sorted(results) == [False, True]
        self.submit_quote.assert_awaited_once()

    def test_latest_reload_wins(self):
        async def scenario():
            first_fetch = asyncio.Event()

            async def fetch(quote_id):
                if self.fetch_quote.await_count == 1:
                    await first_fetch.wait()
                    return valid_quote(line_items=[])
                return valid_quote()

            self.fetch_quote.side_effect = fetch
            stale = asyncio.create_task(workflow.reload())
            await asyncio.sleep(0)
            fresh = await workflow.reload()
            first_fetch.set()
            await stale
            return fresh

        workflow = self.make_workflow(validator=lambda quote: validate_quote(quote, today=TODAY))
        fresh = asyncio.run(scenario())

        assert fresh.status is ApprovalStatus.READY
        assert workflow.state.status is ApprovalStatus.READY
        assert workflow.quote["line_items"]

if __name__ == "__main__":
    # Run tests
    pytest.main([__file__, "-v"])
