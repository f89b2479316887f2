from fastapi import Request

from storeops.data_providers import DataProvider


def get_provider(request: Request) -> DataProvider:
    return request.app.state.data_provider


def get_db(request: Request):
    db = get_provider(request).session()
    try:
        yield db
    finally:
        db.close()
