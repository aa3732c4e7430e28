"""Finalizer-guarded bindings between PolicyServers and admission policies."""

__version__ = "0.1.0"
