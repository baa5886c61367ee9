from typing import NoReturn

from fastapi import HTTPException


class LedgerError(Exception):
    """台账层错误的基类：统一带 code/message，路由层转成 {"detail": {...}}"""

    status_code = 400

    def __init__(self, code: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class LedgerValidationError(LedgerError):
    # 变更前就拒绝，不会留下半截状态
    status_code = 400


class LedgerNotFoundError(LedgerError):
    status_code = 404

    def __init__(self, code: str, message: str):
        super().__init__(code, message, 404)


def abort(status_code: int, code: str, message: str) -> NoReturn:
    # 路由层的参数错误，和台账错误同一个返回格式
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})
