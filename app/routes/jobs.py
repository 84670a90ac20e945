"""
Job Status Tracking for Background Calendar Syncs
"""

import asyncio
import logging
from typing import Optional

from arq import create_pool
from arq.jobs import Job, JobStatus
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from redis.exceptions import RedisError

from ..auth import get_current_user
from ..models import User
from ..worker import get_redis_settings, sync_job_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

STATUS_MAP = {
    JobStatus.deferred: "queued",
    JobStatus.queued: "queued",
    JobStatus.in_progress: "in_progress",
    JobStatus.complete: "complete",
}


class JobStatusResponse(BaseModel):
    jobId: str
    status: str  # queued, in_progress, complete, failed
    result: Optional[dict] = None
    error: Optional[str] = None


async def get_job_status_with_retry(job_id: str, max_retries: int = 3, retry_delay: float = 1.0):
    """Job status from the ARQ queue, retrying with exponential backoff on Redis errors"""
    for attempt in range(max_retries):
        try:
            pool = await asyncio.wait_for(create_pool(get_redis_settings()), timeout=20.0)
            try:
                job = Job(job_id, pool)
                job_status = await asyncio.wait_for(job.status(), timeout=15.0)

                if job_status == JobStatus.not_found:
                    raise HTTPException(status_code=404, detail="Job not found")

                status = STATUS_MAP.get(job_status, "unknown")
                result = None
                error = None

                if job_status == JobStatus.complete:
                    try:
                        job_result = await asyncio.wait_for(job.result(timeout=10), timeout=10.0)
                        result = job_result if isinstance(job_result, dict) else {"data": job_result}
                    except asyncio.TimeoutError:
                        logger.warning(f"⏰ Timeout getting result for job {job_id}")
                        error = "Timeout retrieving job result"
                        status = "failed"
                    except Exception as e:
                        # job.result() re-raises whatever the job function raised
                        error = str(e)
                        status = "failed"
                        logger.error(f"❌ Job {job_id} failed: {error}")

                return JobStatusResponse(jobId=job_id, status=status, result=result, error=error)
            finally:
                await pool.close()

        except (asyncio.TimeoutError, RedisError, OSError) as e:
            logger.warning(f"🔄 Retry {attempt + 1}/{max_retries} for job {job_id}: {str(e)}")
            if attempt == max_retries - 1:
                logger.error(f"❌ All retries failed for job {job_id}: {str(e)}")
                raise HTTPException(
                    status_code=504, detail="Timeout connecting to job queue - please try again"
                ) from e

        await asyncio.sleep(retry_delay * (2**attempt))


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, current_user: User = Depends(get_current_user)):
    """Status of the caller's background calendar sync"""
    if job_id != sync_job_id(current_user.id):
        raise HTTPException(status_code=404, detail="Job not found")
    return await get_job_status_with_retry(job_id)
