"""Serving a pipeline under pounce.

Pounce's ``run()`` takes an import string, but the CLI holds a live
``RoutingPipeline``, so ``pounce.Server`` is used directly with the ASGI
callable.
"""

from doorway.config import ServerConfig
from doorway.pipeline import RoutingPipeline


def run_server(pipeline: RoutingPipeline, config: ServerConfig) -> None:
    """Start a pounce server for *pipeline*.

    A single worker: the activity monitor and the route table live in
    this process. TLS material from *config* is handed to pounce, which
    then reports ``https``/``wss`` scopes to the pipeline.
    """
    from pounce.config import ServerConfig as PounceConfig
    from pounce.server import Server

    pounce_config = PounceConfig(
        host=config.host,
        port=config.port,
        workers=1,
        reload=False,
        log_level=config.log_level,
        ssl_certfile=config.cert,
        ssl_keyfile=config.cert_key,
        # The pipeline mounts its own /healthz
        health_check_path=None,
    )
    Server(pounce_config, pipeline).run()
