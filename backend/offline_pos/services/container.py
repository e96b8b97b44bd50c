# Overview: Builds the data-layer services once per app and hands them out explicitly.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app

from .connectivity import ConnectivityMonitor
from .local_store import LocalStore
from .product_repository import ProductRepository
from .remote_store import HttpRemoteStore, RemoteStore
from .sales_repository import SalesRepository
from .sync_engine import SyncEngine

EXTENSION_KEY = "offline_pos"


@dataclass
class Services:
    store: LocalStore
    products: ProductRepository
    sales: SalesRepository
    remote: Optional[RemoteStore]
    connectivity: ConnectivityMonitor
    sync: SyncEngine


def build_services(config, remote: Optional[RemoteStore] = None) -> Services:
    """
    Wire the store, repositories and sync engine together.

    remote overrides the configured HTTP remote store (tests, embedding).
    """
    if remote is None and config.get("REMOTE_STORE_URL"):
        remote = HttpRemoteStore(
            config["REMOTE_STORE_URL"],
            token=config.get("REMOTE_STORE_TOKEN"),
            timeout=config.get("REMOTE_TIMEOUT_SECONDS", 10.0),
        )

    store = LocalStore()
    products = ProductRepository(store)
    sales = SalesRepository(store)
    connectivity = ConnectivityMonitor(remote=remote)
    engine = SyncEngine(
        store,
        products,
        remote,
        connectivity,
        auto_sync_default=config.get("AUTO_SYNC", True),
    )
    return Services(
        store=store,
        products=products,
        sales=sales,
        remote=remote,
        connectivity=connectivity,
        sync=engine,
    )


def init_services(app: Flask, remote: Optional[RemoteStore] = None) -> Services:
    services = build_services(app.config, remote=remote)
    app.extensions[EXTENSION_KEY] = services
    with app.app_context():
        services.store.init()
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
