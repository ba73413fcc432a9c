from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

import auth
from database import get_db, ProfileDB
from redis_manager import get_notifier

router = APIRouter()

# Close codes sent before the socket is accepted
UNAUTHENTICATED = 4001
NOT_A_MEMBER = 4003


@router.websocket("/ws")
async def notifications_endpoint(websocket: WebSocket, token: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """
    Live events of the caller's company for the CRM screens.
    Authenticated with the Firebase ID token in the 'token' query parameter.
    Events arrive as {"event", "payload", "timestamp"}; sending "ping" returns a pong.
    """
    if not token:
        print("Notifications: no token provided")
        await websocket.close(code=UNAUTHENTICATED)
        return
    try:
        uid = auth.verify_token(token)["uid"]
    except Exception as e:
        print(f"Notifications: authentication failed: {e}")
        await websocket.close(code=UNAUTHENTICATED)
        return

    profile = db.query(ProfileDB).filter(ProfileDB.id == uid).first()
    if not profile or not profile.tenant_id or profile.role not in ("admin", "employee"):
        await websocket.close(code=NOT_A_MEMBER)
        return

    tenant_id = profile.tenant_id
    notifier = await get_notifier()
    await notifier.connect(websocket, tenant_id)
    try:
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        print(f"Notifications socket error: {e}")
    finally:
        notifier.disconnect(websocket, tenant_id)
