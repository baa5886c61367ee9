from fastapi import Request

from toolcrib.services.ledger import InventoryLedger


def get_ledger(request: Request) -> InventoryLedger:
    # 启动时在 lifespan 里建好，整个进程共用一份
    return request.app.state.ledger
