"""gRPC TaskService. ``FetchWatchlist`` is a placeholder that answers with a fixed task.

Requests and responses travel as JSON-encoded bytes through grpcio's generic handler API.
"""

import json
import logging
from concurrent import futures

import grpc

from phab.config import get_settings
from phab.logging_setup import setup_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "grpc.phab.service.TaskService"
FETCH_WATCHLIST_METHOD = f"/{SERVICE_NAME}/FetchWatchlist"


def _decode(data: bytes) -> dict:
    return json.loads(data) if data else {}


def _encode(message: dict) -> bytes:
    return json.dumps(message).encode()


def fetch_watchlist(request: dict, context: grpc.ServicerContext) -> dict:
    logger.debug("FetchWatchlist %s", request)
    return {"tasks": {"id": "wat"}}


def _task_service_handler() -> grpc.GenericRpcHandler:
    return grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            "FetchWatchlist": grpc.unary_unary_rpc_method_handler(
                fetch_watchlist,
                request_deserializer=_decode,
                response_serializer=_encode,
            ),
        },
    )


def create_server(address: str, max_workers: int = 4) -> tuple[grpc.Server, int]:
    """Build an unstarted server bound to ``address`` and return it with the bound port."""
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
    server.add_generic_rpc_handlers((_task_service_handler(),))
    port = server.add_insecure_port(address)
    return server, port


def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    address = f"{settings.grpc_host}:{settings.grpc_port}"
    server, _ = create_server(address)
    server.start()
    print(f"Server running on {address}", flush=True)
    server.wait_for_termination()


if __name__ == "__main__":
    run()
