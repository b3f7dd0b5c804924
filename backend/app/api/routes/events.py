from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.semester import Semester
from app.services.notification_hub import timetable_hub

router = APIRouter()


@router.websocket("/ws/timetable/{semester_id}")
async def timetable_websocket(
    websocket: WebSocket,
    semester_id: int,
    db: Session = Depends(get_db),
) -> None:
    if db.get(Semester, semester_id) is None:
        await websocket.close(code=1008)
        return

    await timetable_hub.connect(semester_id, websocket)
    try:
        connections = await timetable_hub.connection_count(semester_id)
        await websocket.send_json({"event": "connected", "semester_id": semester_id, "connections": connections})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await timetable_hub.disconnect(semester_id, websocket)
