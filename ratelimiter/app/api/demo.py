"""Example endpoints protected by the default route limits."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="/api")


@router.get("/data", response_class=PlainTextResponse)
async def data() -> str:
    return "DATA OK"


@router.post("/otp", response_class=PlainTextResponse)
async def otp() -> str:
    return "OTP SENT"
