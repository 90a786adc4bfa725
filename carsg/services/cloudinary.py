import hashlib
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from fastapi import HTTPException

from ..core.config import Config
from ..core.http import post_form, response_json


logger = logging.getLogger(__name__)

RESOURCE_TYPES = ('image', 'video')
DESTROY_URL = "https://api.cloudinary.com/v1_1/{cloud}/{resource_type}/destroy"


def is_configured() -> bool:
    return bool(Config.CLOUDINARY_CLOUD_NAME and Config.CLOUDINARY_API_KEY and Config.CLOUDINARY_API_SECRET)


def sign(params: Dict[str, Any], secret: str) -> str:
    """Cloudinary signature: sha1 of the sorted ``key=value`` pairs followed by the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{secret}".encode("utf-8")).hexdigest()


def delete_resource(public_id: str, resource_type: str = 'image', timestamp: Optional[int] = None) -> Dict[str, Any]:
    if not public_id:
        raise HTTPException(status_code=400, detail="public_id is required")
    if resource_type not in RESOURCE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid resource type. Must be 'image' or 'video'")
    if not is_configured():
        raise HTTPException(status_code=500, detail="Cloudinary is not configured")

    timestamp = timestamp or int(time.time())
    signature = sign({'public_id': public_id, 'timestamp': timestamp}, Config.CLOUDINARY_API_SECRET)
    url = DESTROY_URL.format(cloud=Config.CLOUDINARY_CLOUD_NAME, resource_type=resource_type)

    try:
        response = post_form(url, {
            'public_id': public_id,
            'timestamp': timestamp,
            'api_key': Config.CLOUDINARY_API_KEY,
            'signature': signature,
        })
    except requests.RequestException as e:
        logger.error(f"Cloudinary request failed for {public_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to reach Cloudinary")

    body = response_json(response)
    if not response.ok:
        message = (body.get('error') or {}).get('message') or response.text[:200]
        logger.error(f"Cloudinary deletion failed for {public_id}: {response.status_code} {message}")
        raise HTTPException(status_code=response.status_code, detail=f"Cloudinary deletion failed: {message}")

    logger.info(f"Cloudinary {resource_type} {public_id}: {body.get('result')}")
    return {"success": True, "public_id": public_id, "result": body.get('result')}


def batch_delete(resources: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Delete each ``{"publicId", "resourceType"}`` entry, collecting failures."""
    if not resources:
        raise HTTPException(status_code=400, detail="resources must be a non-empty list")

    results: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for resource in resources:
        public_id = resource.get('publicId') or ''
        resource_type = resource.get('resourceType') or 'image'
        try:
            results.append(delete_resource(public_id, resource_type))
        except HTTPException as e:
            errors.append({"publicId": public_id, "error": e.detail})

    return {
        "success": not errors,
        "results": results,
        "errors": errors,
        "summary": {"total": len(resources), "successful": len(results), "failed": len(errors)},
    }
