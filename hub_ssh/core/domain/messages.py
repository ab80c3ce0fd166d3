"""
Wire message models for the browser relay channel.

Inbound control frames are JSON objects with a string ``type`` field and are
validated with pydantic. Anything else is an unstructured frame, which the
relay treats as raw terminal input once a shell is active. Outbound frames
are plain dictionaries built by the helpers at the bottom of this module.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class ClientMessageType(str, Enum):
    """Control message types sent by the browser."""
    CONNECT = "connect"
    DATA = "data"
    RESIZE = "resize"
    SFTP_INIT = "sftp_init"
    SFTP_READDIR = "sftp_readdir"
    SFTP_STAT = "sftp_stat"
    SFTP_DOWNLOAD_FILE = "sftp_download_file"
    SFTP_UPLOAD_FILE = "sftp_upload_file"


class ServerMessageType(str, Enum):
    """Control message types sent to the browser."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    SFTP_READY = "sftp_ready"
    SFTP_READDIR_RESULT = "sftp_readdir_result"
    SFTP_STAT_RESULT = "sftp_stat_result"
    SFTP_FILE_DATA = "sftp_file_data"
    SFTP_UPLOAD_SUCCESS = "sftp_upload_success"
    SFTP_ERROR = "sftp_error"


class ControlMessage(BaseModel):
    """Base model for inbound control frames."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str


class ConnectRequest(ControlMessage):
    """
    Connect request.

    Fields are deliberately loose: the credential resolver owns validation so
    that a malformed request yields a precise error message.
    """
    session_id: Optional[Any] = Field(None, alias="sessionId")
    host: Optional[Any] = None
    port: Optional[Any] = None
    username: Optional[Any] = None
    auth: Optional[Any] = None
    password: Optional[Any] = None
    private_key: Optional[Any] = Field(None, alias="privateKey")
    passphrase: Optional[Any] = None


class DataMessage(ControlMessage):
    data: Any = None


class ResizeRequest(ControlMessage):
    cols: Optional[Any] = None
    rows: Optional[Any] = None
    width: Optional[Any] = None
    height: Optional[Any] = None


class SftpInitRequest(ControlMessage):
    pass


class ReaddirRequest(ControlMessage):
    path: str = "."


class StatRequest(ControlMessage):
    path: str


class DownloadRequest(ControlMessage):
    filepath: str
    file_id: Optional[str] = Field(None, alias="fileId")


class UploadRequest(ControlMessage):
    filename: str
    filepath: Optional[str] = None
    path: Optional[str] = None
    file_id: Optional[str] = Field(None, alias="fileId")
    data: Any = None
    size: Optional[int] = None


MESSAGE_MODELS: Dict[str, Type[ControlMessage]] = {
    ClientMessageType.CONNECT.value: ConnectRequest,
    ClientMessageType.DATA.value: DataMessage,
    ClientMessageType.RESIZE.value: ResizeRequest,
    ClientMessageType.SFTP_INIT.value: SftpInitRequest,
    ClientMessageType.SFTP_READDIR.value: ReaddirRequest,
    ClientMessageType.SFTP_STAT.value: StatRequest,
    ClientMessageType.SFTP_DOWNLOAD_FILE.value: DownloadRequest,
    ClientMessageType.SFTP_UPLOAD_FILE.value: UploadRequest,
}


def decode_frame(frame: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    """
    Decode an inbound frame into a control object.

    Returns:
        The parsed JSON object, or ``None`` when the frame is not a JSON
        object carrying a string ``type`` field.
    """
    if isinstance(frame, (bytes, bytearray)):
        try:
            text = bytes(frame).decode("utf-8")
        except UnicodeDecodeError:
            return None
    else:
        text = frame

    try:
        payload = json.loads(text)
    except ValueError:
        return None

    if isinstance(payload, dict) and isinstance(payload.get("type"), str):
        return payload
    return None


def parse_control(payload: Dict[str, Any]) -> Optional[ControlMessage]:
    """
    Validate a decoded control object against its message model.

    Returns ``None`` for unknown message types. Raises
    ``pydantic.ValidationError`` when a known type carries bad fields.
    """
    model = MESSAGE_MODELS.get(payload["type"])
    if model is None:
        return None
    return model.model_validate(payload)


def connected() -> Dict[str, Any]:
    return {"type": ServerMessageType.CONNECTED.value}


def disconnected() -> Dict[str, Any]:
    return {"type": ServerMessageType.DISCONNECTED.value}


def error(message: str) -> Dict[str, Any]:
    return {"type": ServerMessageType.ERROR.value, "message": message}


def sftp_ready() -> Dict[str, Any]:
    return {"type": ServerMessageType.SFTP_READY.value}


def sftp_readdir_result(path: str, files: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": ServerMessageType.SFTP_READDIR_RESULT.value, "path": path, "files": files}


def sftp_stat_result(path: str, stats: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": ServerMessageType.SFTP_STAT_RESULT.value, "path": path, "stats": stats}


def sftp_file_data(file_id: Optional[str], data: bytes) -> Dict[str, Any]:
    # Byte values as a JSON array, the same shape uploads arrive in
    return {
        "type": ServerMessageType.SFTP_FILE_DATA.value,
        "fileId": file_id,
        "data": list(data),
    }


def sftp_upload_success(file_id: Optional[str], filename: str) -> Dict[str, Any]:
    return {
        "type": ServerMessageType.SFTP_UPLOAD_SUCCESS.value,
        "fileId": file_id,
        "filename": filename,
    }


def sftp_error(message: str, file_id: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": ServerMessageType.SFTP_ERROR.value, "message": message}
    if file_id is not None:
        payload["fileId"] = file_id
    return payload
