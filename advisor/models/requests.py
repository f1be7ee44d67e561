# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data coming INTO the API. FastAPI validates the body against
# these models and returns a 422 for anything malformed, before the
# orchestrator is ever built.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class AdviseRequest(BaseModel):
    """
    Request body for POST /advise — ask one advisor a market question.

    Example:
        {
            "question": "Analyze TSLA",
            "domain": "stock"
        }
    """

    question: str = Field(
        ...,
        min_length=3,
        max_length=2000,
        description="The market question to answer",
        examples=["What is the price of BTC?"],
    )

    # Checked against the registered profiles in the handler so that an
    # unknown domain is a 404 rather than a schema error.
    domain: str = Field(
        default="crypto",
        min_length=1,
        max_length=32,
        description="Advisor domain: crypto, stock or forex",
        examples=["crypto"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "What is the price of BTC?", "domain": "crypto"},
                {"question": "Analyze TSLA", "domain": "stock"},
            ]
        }
    )
