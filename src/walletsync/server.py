"""
Wallet and bridge status server.

The browser reports external wallet events and asks for internal wallet
actions over ``/ws``; every processed message is answered with a broadcast
of the wallet state and the transfer list.

Usage: walletsync-server --port 8001
"""

import argparse
import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Set

import uvicorn
from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from walletsync.config import WalletSyncConfig
from walletsync.errors import WalletSyncError
from walletsync.runtime import WalletSyncRuntime
from walletsync.transfers import BridgeTransfer, TransferRequest

logger = logging.getLogger(__name__)

AMOUNT_RE = re.compile(r"[0-9]+")


def _chain_id(value: Any) -> int:
    """Accept 3888, "3888" or "0xf30"."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid chain id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 0)
    raise ValueError(f"Invalid chain id: {value!r}")


def _amount(value: Any) -> int:
    """Accept an integer or a string of decimal digits, in base units."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and AMOUNT_RE.fullmatch(value):
        return int(value)
    raise ValueError(f"Invalid amount: {value!r}")


def create_app(runtime: WalletSyncRuntime, start_reconciler: bool = True) -> FastAPI:
    """
    Build the FastAPI application around a runtime.

    Parameters
    ----------
    runtime : WalletSyncRuntime
        Wallet and transfer state served by the app.
    start_reconciler : bool
        Run the transfer reconciler for the lifetime of the app.
    """
    active_connections: List[WebSocket] = []
    pending_broadcasts: Set[asyncio.Task] = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_reconciler:
            runtime.transfers.prune(runtime.config.prune_age)
            runtime.reconciler.start()
        yield
        await runtime.close()

    app = FastAPI(title="walletsync", lifespan=lifespan)

    def snapshot() -> Dict[str, Any]:
        return {
            "wallet_state": runtime.wallet_state(),
            "transfers": [runtime.transfer_view(t) for t in runtime.transfers.list()],
        }

    async def broadcast_state():
        """Broadcast wallet and transfer state to all connected clients"""
        if not active_connections:
            return

        state = snapshot()
        disconnected = []
        for connection in list(active_connections):
            try:
                await connection.send_json(state)
            except Exception as e:
                logger.error(f"Error broadcasting to client: {e}")
                disconnected.append(connection)

        for connection in disconnected:
            if connection in active_connections:
                active_connections.remove(connection)

    def on_transfer_change(transfer: BridgeTransfer) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(broadcast_state())
        pending_broadcasts.add(task)
        task.add_done_callback(pending_broadcasts.discard)

    runtime.transfers.on_change(on_transfer_change)

    def require_transfer(transfer_id: int) -> BridgeTransfer:
        transfer = runtime.transfers.get_by_id(transfer_id)
        if transfer is None:
            raise HTTPException(status_code=404, detail=f"Unknown transfer id: {transfer_id}")
        return transfer

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "connections": len(active_connections),
            "reconciler_running": runtime.reconciler.running,
            "pending_transfers": len(runtime.transfers.pending()),
        }

    @app.get("/wallet")
    async def get_wallet():
        return runtime.wallet_state()

    @app.get("/transfers")
    async def list_transfers():
        return [runtime.transfer_view(t) for t in runtime.transfers.list()]

    @app.post("/transfers", status_code=201)
    async def create_transfer(payload: Dict[str, Any] = Body(...)):
        try:
            request = TransferRequest(
                source_chain_id=_chain_id(payload["source_chain_id"]),
                dest_chain_id=_chain_id(payload["dest_chain_id"]),
                token_address=payload["token_address"],
                amount=_amount(payload["amount"]),
                sender=payload["sender"],
                recipient=payload["recipient"],
                source_tx_hash=payload.get("source_tx_hash"),
            )
            transfer_id = runtime.transfers.create(request)
        except KeyError as e:
            raise HTTPException(status_code=400, detail=f"Missing field: {e.args[0]}")
        except (WalletSyncError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return runtime.transfer_view(runtime.transfers.get_by_id(transfer_id))

    @app.get("/transfers/{transfer_id}")
    async def get_transfer(transfer_id: int):
        return runtime.transfer_view(require_transfer(transfer_id))

    @app.post("/transfers/{transfer_id}/source_tx")
    async def record_source_tx(transfer_id: int, payload: Dict[str, Any] = Body(...)):
        require_transfer(transfer_id)
        try:
            recorded = runtime.transfers.record_source_tx(transfer_id, payload.get("tx_hash"))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "recorded": recorded,
            "transfer": runtime.transfer_view(runtime.transfers.get_by_id(transfer_id)),
        }

    @app.post("/transfers/{transfer_id}/cancel")
    async def cancel_transfer(transfer_id: int):
        require_transfer(transfer_id)
        canceled = runtime.transfers.cancel(transfer_id)
        return {
            "canceled": canceled,
            "transfer": runtime.transfer_view(runtime.transfers.get_by_id(transfer_id)),
        }

    async def handle_message(message: Dict[str, Any]) -> bool:
        msg_type = message.get("type")

        if msg_type == "wallet_connect":
            runtime.browser.report_connect(message["address"], _chain_id(message["chain_id"]))
            runtime.library.activate(runtime.browser.connector_id)
        elif msg_type == "wallet_disconnect":
            runtime.browser.report_disconnect()
        elif msg_type == "chain_changed":
            runtime.browser.report_chain(_chain_id(message["chain_id"]))
        elif msg_type == "internal_connect":
            chain_id = message.get("chain_id")
            await runtime.bridge.use_internal(_chain_id(chain_id) if chain_id is not None else None)
        elif msg_type == "internal_disconnect":
            chain_id = message.get("chain_id")
            if chain_id is None:
                await runtime.internal.disconnect()
            else:
                runtime.internal.request_disconnect(_chain_id(chain_id))
        elif msg_type == "internal_switch":
            runtime.internal.switch_active_chain(_chain_id(message["chain_id"]))
        else:
            return False
        return True

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Handle WebSocket connections for real-time wallet state updates"""
        await websocket.accept()
        active_connections.append(websocket)
        logger.info(f"Client connected. Total connections: {len(active_connections)}")

        try:
            await websocket.send_json(snapshot())

            while True:
                message = await websocket.receive_json()
                try:
                    handled = await handle_message(message)
                except WalletSyncError as e:
                    await websocket.send_json({"error": e.to_rpc_error()})
                    continue
                except (KeyError, ValueError) as e:
                    await websocket.send_json(
                        {"error": {"code": -32602, "message": f"Invalid message: {e}"}}
                    )
                    continue

                if not handled:
                    await websocket.send_json(
                        {"error": {"code": -32601, "message": f"Unknown message type: {message.get('type')}"}}
                    )
                    continue
                await broadcast_state()

        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            if websocket in active_connections:
                active_connections.remove(websocket)
            logger.info(f"Client disconnected. Total connections: {len(active_connections)}")

    return app


def main():
    parser = argparse.ArgumentParser(description="walletsync status server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument(
        "--port", type=int, default=8001, help="Port to run the server on (default: 8001)"
    )
    args = parser.parse_args()

    config = WalletSyncConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    runtime = WalletSyncRuntime.from_config(config)
    app = create_app(runtime)

    logger.info(f"walletsync server available at http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
