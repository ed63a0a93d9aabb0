#!/usr/bin/env python3
"""
nodepilot - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the API server

All node logic is in the modules, following black box principles.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from nodepilot import __version__
from nodepilot.config import ConfigProvider, get_config_provider
from nodepilot.errors import (
    CleanupError,
    CollectionError,
    CommandError,
    ConfigurationError,
    DeploymentError,
    DeploymentTimeoutError,
    RemoteConnectionError,
    RemoteTimeoutError,
)
from nodepilot.logging_config import configure_logging, get_logging_config

# Import modules through their black box interfaces
from nodepilot.modules.api import (
    CleanupResult,
    ContainerImage,
    DeploymentCleanupRequest,
    DeploymentRequest,
    DeploymentResponse,
    DiagnosisResult,
    NamespaceCleanupRequest,
    NodeDescriptor,
    PodCleanupRequest,
    ResourceSnapshot,
)
from nodepilot.modules.deploy import (
    DeploymentOrchestrator,
    InMemoryPortReservations,
    RedisPortReservations,
)
from nodepilot.modules.diagnostics import CleanupModule
from nodepilot.modules.images import ImageInventory
from nodepilot.modules.remote import SessionFactory, get_credential_resolver
from nodepilot.modules.storage import StorageModule
from nodepilot.modules.telemetry import TelemetrySampler

# Configuration provider (centralized config access)
config_provider: ConfigProvider = get_config_provider()

configure_logging(config_provider.get_api_config().log_level)
logger = logging.getLogger("nodepilot.api")

# Module instances (initialized at startup)
session_factory: Optional[SessionFactory] = None
telemetry_sampler: Optional[TelemetrySampler] = None
image_inventory: Optional[ImageInventory] = None
deployment_orchestrator: Optional[DeploymentOrchestrator] = None
cleanup_module: Optional[CleanupModule] = None
storage_module: Optional[StorageModule] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global session_factory, telemetry_sampler, image_inventory
    global deployment_orchestrator, cleanup_module, storage_module

    # Startup
    logger.info("Starting nodepilot API...")

    ssh_config = config_provider.get_ssh_config()
    session_factory = SessionFactory(ssh_config, get_credential_resolver())

    storage_module = StorageModule(config_provider.get_storage_config())
    if storage_module.enabled:
        reservations = RedisPortReservations(await storage_module.connect())
        logger.info("Port reservations stored in Redis")
    else:
        reservations = InMemoryPortReservations()
        logger.info("Port reservations kept in memory")

    telemetry_sampler = TelemetrySampler(session_factory, config_provider.get_telemetry_config())
    image_inventory = ImageInventory(session_factory)
    deployment_orchestrator = DeploymentOrchestrator(
        session_factory, config_provider.get_deploy_config(), reservations
    )
    cleanup_module = CleanupModule(session_factory)

    logger.info("nodepilot API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down nodepilot API...")
    if storage_module:
        await storage_module.disconnect()
    logger.info("nodepilot API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="nodepilot API",
    description="Remote node telemetry and container orchestration over SSH",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        200: Service healthy
        503: Modules not initialized
    """
    modules_ready = all(
        [session_factory, telemetry_sampler, image_inventory, deployment_orchestrator, cleanup_module]
    )
    if not modules_ready:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "modules": "not initialized", "version": __version__},
        )
    return {"status": "healthy", "modules": "initialized", "version": __version__}


# Telemetry


@app.post("/nodes/snapshot", response_model=ResourceSnapshot)
async def node_snapshot(node: NodeDescriptor):
    """
    Take a resource snapshot of one node.

    Returns:
        200: Snapshot
        400: No SSH user or credential configured
        502: Node unreachable or a required read failed
        504: Connect or command timeout
    """
    if not telemetry_sampler:
        raise HTTPException(503, "Service not initialized")
    return await telemetry_sampler.snapshot(node)


@app.post("/nodes/snapshots")
async def node_snapshots(nodes: List[NodeDescriptor]) -> Dict[str, dict]:
    """Snapshot many nodes; each entry holds a snapshot or an error."""
    if not telemetry_sampler:
        raise HTTPException(503, "Service not initialized")

    results = await telemetry_sampler.snapshot_many(nodes)
    response = {}
    for address, result in results.items():
        if isinstance(result, Exception):
            response[address] = {"error": str(result), "type": type(result).__name__}
        else:
            response[address] = {
                "snapshot": result.model_dump(mode="json"),
                "health": result.health.value,
            }
    return response


# Images


@app.post("/nodes/images", response_model=List[ContainerImage])
async def node_images(node: NodeDescriptor):
    if not image_inventory:
        raise HTTPException(503, "Service not initialized")
    return await image_inventory.list_node_images(node)


@app.post("/images", response_model=List[ContainerImage])
async def all_images(nodes: List[NodeDescriptor]):
    """Merged image inventory across nodes; unreachable nodes are skipped."""
    if not image_inventory:
        raise HTTPException(503, "Service not initialized")
    return await image_inventory.list_all_nodes_images(nodes)


# Deployments


@app.post("/deployments", response_model=DeploymentResponse, status_code=201)
async def create_deployment(request: DeploymentRequest):
    """
    Deploy an SSH-accessible container onto a node.

    The response carries the one-time root password; it is not stored.

    Returns:
        201: Deployment running and exposed
        400: No SSH user or credential configured
        502: A deployment step failed
        504: Pod never became ready (classification included)
    """
    if not deployment_orchestrator:
        raise HTTPException(503, "Service not initialized")

    logger.info(
        f"Deployment requested: {request.namespace}/{request.deployment_name} "
        f"image={request.image} on {request.node.address}"
    )
    result = await deployment_orchestrator.deploy(request)
    return DeploymentResponse.from_result(result)


# Cleanup and diagnostics


@app.post("/cleanup/pod", response_model=CleanupResult)
async def cleanup_pod(request: PodCleanupRequest):
    if not cleanup_module:
        raise HTTPException(503, "Service not initialized")
    return await cleanup_module.delete_pod(request.node, request.namespace, request.pod_name)


@app.post("/cleanup/deployment", response_model=CleanupResult)
async def cleanup_deployment(request: DeploymentCleanupRequest):
    """Delete a deployment and its NodePort service."""
    if not cleanup_module:
        raise HTTPException(503, "Service not initialized")
    return await cleanup_module.delete_deployment(
        request.node, request.namespace, request.deployment_name
    )


@app.post("/cleanup/namespace", response_model=CleanupResult)
async def cleanup_namespace(request: NamespaceCleanupRequest):
    if not cleanup_module:
        raise HTTPException(503, "Service not initialized")
    return await cleanup_module.delete_namespace(request.node, request.namespace)


@app.post("/diagnostics/pod", response_model=DiagnosisResult)
async def diagnose_pod(request: PodCleanupRequest):
    """Classify why a pod is pending or failing."""
    if not cleanup_module:
        raise HTTPException(503, "Service not initialized")
    return await cleanup_module.diagnose_pod(request.node, request.namespace, request.pod_name)


# Error handlers


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request, exc):
    """Handle missing SSH user or credential."""
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(DeploymentTimeoutError)
async def deployment_timeout_handler(request, exc):
    """Handle pods that never became ready."""
    logger.error(f"Deployment timed out ({exc.classification}): {exc}")
    return JSONResponse(
        status_code=504,
        content={
            "error": str(exc),
            "classification": exc.classification,
            "pod_name": exc.pod_name,
            "diagnostics": exc.diagnostics,
        },
    )


@app.exception_handler(RemoteTimeoutError)
async def remote_timeout_handler(request, exc):
    """Handle connect and command timeouts."""
    logger.error(f"Remote timeout: {exc}")
    return JSONResponse(status_code=504, content={"error": str(exc), "address": exc.address})


@app.exception_handler(RemoteConnectionError)
@app.exception_handler(CollectionError)
@app.exception_handler(CommandError)
@app.exception_handler(DeploymentError)
@app.exception_handler(CleanupError)
async def remote_error_handler(request, exc):
    """Handle node-side failures."""
    logger.error(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc), "type": type(exc).__name__})


def main():
    """Run the API server."""
    api_config = config_provider.get_api_config()
    # Use dict config for logging, not file path
    uvicorn.run(
        "nodepilot.main:app",
        host=api_config.host,
        port=api_config.port,
        log_level=api_config.log_level.lower(),
        reload=api_config.debug,
        log_config=get_logging_config(api_config.log_level),
    )


if __name__ == "__main__":
    main()
