from typing import Dict, Any
from langgraph.graph import StateGraph, START, END
from loguru import logger

from engine.state import AccountState
from engine.nodes.capture import capture
from engine.nodes.score import score

def build_account_flow():
    """Build the account evaluation workflow."""
    workflow = StateGraph(AccountState)

    workflow.add_node("capture", capture)
    workflow.add_node("score", score)

    workflow.add_edge(START, "capture")

    # Accounts that could not be captured are never scored
    def branch_decision(state: AccountState) -> str:
        if state.get("record") is None:
            logger.warning(f"Skipping scoring, no record captured: {state.get('errors', [])}")
            return "end"
        return "score"

    workflow.add_conditional_edges(
        "capture",
        branch_decision,
        {
            "score": "score",
            "end": END
        }
    )
    workflow.add_edge("score", END)

    return workflow.compile()

account_flow = build_account_flow()

def evaluate_account(raw: Dict[str, Any], account_id: str = "") -> AccountState:
    """Run the account flow over a CRM payload."""
    initial_state = {
        "account_id": account_id,
        "raw": raw or {},
        "errors": [],
        "score_reasons": []
    }
    return account_flow.invoke(initial_state)
