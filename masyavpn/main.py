from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .tunnel.exceptions import AlreadyActive, MalformedCredential, TunnelError
from .tunnel.manager import TunnelSession
from .tunnel.models import Credential, SessionStatus
from .tunnel.settings import load_settings
from .logging_utility import logger


session = TunnelSession.instance(load_settings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if session.get_status() != SessionStatus.DISCONNECTED:
        logger.info("Shutting down, disconnecting tunnel")
        await session.disconnect()


app = FastAPI(title="MasyaVPN", lifespan=lifespan)


class CredentialBody(BaseModel):
    protocol: str = "vmess"
    payload: str
    session_id: str
    private_key: Optional[str] = None
    server: Optional[Dict[str, Any]] = None


@app.post("/connect")
async def connect(body: CredentialBody):
    """Bring the tunnel up with a freshly issued credential"""
    credential = Credential(
        protocol=body.protocol,
        payload=body.payload,
        session_id=body.session_id,
        private_key=body.private_key,
        server=body.server,
    )
    try:
        connected = await session.connect(credential)
        return {"status": "success", "connected": connected}
    except AlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MalformedCredential as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TunnelError as e:
        logger.error(f"Error connecting tunnel: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/disconnect")
async def disconnect():
    """Tear the tunnel down"""
    await session.disconnect()
    return {"status": "success"}


@app.get("/status")
async def get_status():
    """Current session status"""
    return {"status": session.get_status().value}
