from typing import Optional

from pydantic import BaseModel, Field

from blockcast_core.runtime_config import EngineRuntimeConfig


class BlockcastConfig(BaseModel):
    """
    Deployment configuration for the BlockCast Core Engine.
    Decouples the engine from environment variables.
    """

    model_config = {"arbitrary_types_allowed": True}

    # External verification / evidence synthesis feed
    verification_url: Optional[str] = Field(None, description="Endpoint of the external verification feed")
    verification_api_key: Optional[str] = Field(None, description="API key for the verification feed")

    # Ledger identities
    bond_custodian_address: str = Field(
        "dispute-manager", description="Address holding dispute bonds (allowance spender)"
    )
    treasury_address: str = Field("treasury", description="Address receiving the treasury share of slashed bonds")

    # Tunables (window, thresholds, reward economics)
    runtime: EngineRuntimeConfig = Field(default_factory=EngineRuntimeConfig)
