"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.policies_router import api as policies_api
from src.api.wallet_router import api as wallet_api
from src.error_handler import ErrorHandler, status_code_for
from src.integrations.contracts.errors import SmartInsuranceError
from src.integrations.contracts.interfaces import ChainBinding
from src.integrations.policy.chain_bindings import ChainBindingResolver
from src.utils.config_loader import WalletConfig, load_chain_binding_table, load_wallet_config
from src.wallet.dependencies import api_key_protection
from src.wallet.session import SessionManager

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Hardhat's first default account.
DEFAULT_MOCK_WALLET = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
MOCK_CHAIN_ID = 31337

# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================


def build_session_manager(
    config: Optional[WalletConfig] = None,
    resolver: Optional[ChainBindingResolver] = None,
) -> SessionManager:
    """Select mock or real clients; this is the only place that decides."""
    config = config or load_wallet_config()
    resolver = resolver or ChainBindingResolver.from_table(load_chain_binding_table())

    if config.use_mock_ledger:
        from src.integrations.clients.mocks import InMemoryLedger, MockWalletProvider

        binding = resolver.resolve(MOCK_CHAIN_ID)
        ledger = InMemoryLedger(
            binding.registry_address,
            binding.token_address,
            binding.insurance_gateway_address,
            supports_filtered_policy_lists=config.supports_filtered_policy_lists,
        )
        provider = MockWalletProvider(
            ledger,
            os.getenv("MOCK_WALLET_ADDRESS", DEFAULT_MOCK_WALLET),
            chain_id=MOCK_CHAIN_ID,
        )
        logger.info("Using in-memory ledger and mock wallet")
        return SessionManager(provider, lambda _binding: ledger, resolver, config)

    from src.integrations.clients.real_http.chain_rpc import Web3ChainClient
    from src.integrations.clients.real_http.wallet_bridge import WalletBridgeProvider

    def chain_factory(binding: ChainBinding) -> Web3ChainClient:
        return Web3ChainClient(
            binding,
            config.rpc_urls.get(binding.chain_id, ""),
            policy_artifact_path=config.policy_artifact_path,
            supports_filtered_policy_lists=config.supports_filtered_policy_lists,
        )

    provider = WalletBridgeProvider(
        base_url=config.wallet_bridge_url,
        api_key=config.wallet_bridge_api_key,
        timeout_seconds=config.connect_timeout_seconds,
    )
    logger.info(f"Using wallet bridge at {config.wallet_bridge_url or '<unset>'} and JSON-RPC nodes")
    return SessionManager(provider, chain_factory, resolver, config)


# Initialize FastAPI app
app = FastAPI(
    title="Smart Insurance Wallet API",
    description="Wallet session, role registration and parametric policy orchestration",
    version="1.0.0",
    dependencies=[Depends(api_key_protection)],  # protect everything by default
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

error_handler = ErrorHandler()
app.state.session_manager = build_session_manager()


@app.exception_handler(SmartInsuranceError)
async def smart_insurance_error_handler(request: Request, exc: SmartInsuranceError):
    payload = error_handler.handle_exception(exc, context={"path": request.url.path})
    return JSONResponse(status_code=status_code_for(exc), content={"error": exc.code, **payload})


@app.get("/", tags=["Health"])
async def root():
    return {"service": "smart-insurance-wallet", "status": "ok"}


@app.get("/health", tags=["Health"])
async def health():
    manager: SessionManager = app.state.session_manager
    return {
        "status": "healthy",
        "wallet_connected": manager.session.connected,
        "supported_chain_ids": manager.resolver.supported_chain_ids,
    }


app.include_router(wallet_api, prefix="/api/v1")
app.include_router(policies_api, prefix="/api/v1")


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================
@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    logger.info("Starting Smart Insurance Wallet API...")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Smart Insurance Wallet API...")
    manager: SessionManager = app.state.session_manager
    if manager.session.connected:
        await manager.disconnect()
