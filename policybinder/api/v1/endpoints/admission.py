"""AdmissionReview endpoints exposing the defaulting and validation stages."""

import base64
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from policybinder.core.logging import get_logger
from policybinder.models.kinds import ResourceKind, kind_for
from policybinder.webhooks import Operation, on_mutate, on_validate

logger = get_logger(__name__)

router = APIRouter()

ADMISSION_API_VERSION = "admission.k8s.io/v1"


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class AdmissionRequest(BaseModel):
    """The parts of admission.k8s.io/v1 AdmissionRequest used here."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: str
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    operation: Operation
    name: Optional[str] = None
    namespace: Optional[str] = None
    object: Optional[Dict[str, Any]] = None
    old_object: Optional[Dict[str, Any]] = Field(None, alias="oldObject")
    dry_run: bool = Field(False, alias="dryRun")


class AdmissionReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: AdmissionRequest


def _resolve_kind(plural: str) -> ResourceKind:
    try:
        return kind_for(plural)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No admission webhook for {plural}",
        )


def _with_namespace(obj: Dict[str, Any], namespace: Optional[str]) -> Dict[str, Any]:
    """Objects in create requests may omit the namespace the request carries."""
    if namespace and not (obj.get("metadata") or {}).get("namespace"):
        obj = dict(obj)
        obj["metadata"] = {**(obj.get("metadata") or {}), "namespace": namespace}
    return obj


def metadata_patch(original: Dict[str, Any], mutated: Dict[str, Any]) -> List[Dict[str, Any]]:
    """JSONPatch turning ``original`` into ``mutated``.

    Defaulting only ever touches metadata.finalizers.
    """
    before = (original.get("metadata") or {}).get("finalizers")
    after = (mutated.get("metadata") or {}).get("finalizers")
    if before == after:
        return []
    if "metadata" not in original:
        return [{"op": "add", "path": "/metadata", "value": {"finalizers": after}}]
    if before is None:
        return [{"op": "add", "path": "/metadata/finalizers", "value": after}]
    return [{"op": "replace", "path": "/metadata/finalizers", "value": after}]


def _review(response: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": "AdmissionReview",
        "response": response,
    }


def _internal_error(uid: str, e: Exception) -> Dict[str, Any]:
    return _review(
        {
            "uid": uid,
            "allowed": False,
            "status": {"code": 500, "message": f"internal error: {e}"},
        }
    )


@router.post("/mutate/{plural}", summary="Defaulting webhook")
async def mutate(plural: str, review: AdmissionReview) -> Dict[str, Any]:
    kind = _resolve_kind(plural)
    request = review.request
    original = request.object or {}

    try:
        mutated = on_mutate(kind, request.operation, original)
    except Exception as e:
        logger.exception(f"Defaulting {kind} failed for request {request.uid}")
        return _internal_error(request.uid, e)

    response: Dict[str, Any] = {"uid": request.uid, "allowed": True}
    patch = metadata_patch(original, mutated)
    if patch:
        response["patchType"] = "JSONPatch"
        response["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()
    return _review(response)


@router.post("/validate/{plural}", summary="Validation webhook")
async def validate(plural: str, review: AdmissionReview) -> Dict[str, Any]:
    kind = _resolve_kind(plural)
    request = review.request

    if request.object is None:
        # DELETE and CONNECT carry no new object; deletion is gated by finalizers
        return _review({"uid": request.uid, "allowed": True})

    try:
        decision = on_validate(
            kind,
            request.operation,
            request.old_object,
            _with_namespace(request.object, request.namespace),
        )
    except Exception as e:
        logger.exception(f"Validating {kind} failed for request {request.uid}")
        return _internal_error(request.uid, e)

    response: Dict[str, Any] = {"uid": request.uid, "allowed": decision.allowed}
    if not decision.allowed:
        response["status"] = {
            "code": decision.code,
            "reason": "Forbidden",
            "message": decision.message,
        }
    return _review(response)
