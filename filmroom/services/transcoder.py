"""
Transcode Job Service
Submits and inspects AWS Elemental MediaConvert jobs for uploaded videos
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..models.video_asset import ProcessingState, TranscodeResult, VariantQuality
from ..utils.exceptions import TranscodeLookupError, TranscodeSubmitError
from ..utils.logger import get_logger

logger = get_logger()

VIDEO_EXTENSIONS = ('.mp4', '.mov', '.avi', '.mkv', '.wmv', '.flv', '.webm')

_STATUS_MAP = {
    "SUBMITTED": ProcessingState.PENDING,
    "PROGRESSING": ProcessingState.PROCESSING,
    "COMPLETE": ProcessingState.COMPLETED,
    "ERROR": ProcessingState.FAILED,
    "CANCELED": ProcessingState.FAILED,
}

_VARIANT_MODIFIERS = {
    "_1080p": VariantQuality.P1080,
    "_720p": VariantQuality.P720,
}


def is_video_file(filename: str) -> bool:
    return PurePosixPath(filename.lower()).suffix in VIDEO_EXTENSIONS


class TranscodeService(ABC):
    """External job that produces playback variants and thumbnails"""

    @abstractmethod
    async def submit(self, asset_id: str, source_location: str) -> str:
        """Start a job for the asset; returns the job id."""

    @abstractmethod
    async def status(self, asset_id: str, job_id: Optional[str] = None) -> ProcessingState:
        """Current job state. Raises TranscodeLookupError when unreachable."""

    @abstractmethod
    async def result(self, asset_id: str, job_id: Optional[str] = None) -> TranscodeResult:
        """Artifacts of a completed job."""

    async def failure_reason(self, asset_id: str, job_id: Optional[str] = None) -> Optional[str]:
        """Human readable reason for a failed job, when the service reports one."""
        return None


class UnavailableTranscoder(TranscodeService):
    """Stand-in used when no transcode backend is configured"""

    async def submit(self, asset_id: str, source_location: str) -> str:
        raise TranscodeSubmitError(asset_id, "no transcode service configured")

    async def status(self, asset_id: str, job_id: Optional[str] = None) -> ProcessingState:
        raise TranscodeLookupError(asset_id, "no transcode service configured")

    async def result(self, asset_id: str, job_id: Optional[str] = None) -> TranscodeResult:
        raise TranscodeLookupError(asset_id, "no transcode service configured")


class MediaConvertTranscoder(TranscodeService):
    """MediaConvert-backed transcoder writing outputs next to the raw upload"""

    def __init__(self, settings: Settings, client=None, s3_client=None):
        self.settings = settings
        self.bucket = settings.s3_bucket_name
        self._client = client
        self._s3_client = s3_client

    @property
    def client(self):
        if self._client is None:
            import boto3

            kwargs: Dict[str, Any] = {
                "aws_access_key_id": self.settings.aws_access_key_id,
                "aws_secret_access_key": self.settings.aws_secret_access_key,
                "region_name": self.settings.aws_region,
            }
            if self.settings.mediaconvert_endpoint:
                kwargs["endpoint_url"] = self.settings.mediaconvert_endpoint
            self._client = boto3.client("mediaconvert", **kwargs)
        return self._client

    @property
    def s3_client(self):
        if self._s3_client is None:
            import boto3

            self._s3_client = boto3.client(
                "s3",
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
                region_name=self.settings.aws_region,
            )
        return self._s3_client

    # =========================================================================
    # Key layout
    # =========================================================================

    def _source_key(self, source_location: str) -> str:
        prefix = f"s3://{self.bucket}/"
        if source_location.startswith(prefix):
            return source_location[len(prefix):]
        return source_location

    def output_prefix(self, source_key: str) -> str:
        """protected/game-videos/g1/g1_123.mp4 -> protected/processed-videos/g1/g1_123"""
        stem = str(PurePosixPath(source_key).with_suffix(""))
        video_prefix = self.settings.video_key_prefix.rstrip("/") + "/"
        if stem.startswith(video_prefix):
            stem = self.settings.processed_key_prefix.rstrip("/") + "/" + stem[len(video_prefix):]
        return stem

    def build_job_settings(self, asset_id: str, source_key: str) -> Dict[str, Any]:
        input_uri = f"s3://{self.bucket}/{source_key}"
        output_uri = f"s3://{self.bucket}/{self.output_prefix(source_key)}"
        aac_audio = [{
            "CodecSettings": {
                "Codec": "AAC",
                "AacSettings": {"Bitrate": 128000, "SampleRate": 48000, "CodingMode": "CODING_MODE_2_0"},
            }
        }]

        def mp4_output(modifier: str, width: int, height: int, max_bitrate: int, quality: int):
            return {
                "NameModifier": modifier,
                "ContainerSettings": {"Container": "MP4", "Mp4Settings": {}},
                "VideoDescription": {
                    "Width": width,
                    "Height": height,
                    "CodecSettings": {
                        "Codec": "H_264",
                        "H264Settings": {
                            "RateControlMode": "QVBR",
                            "MaxBitrate": max_bitrate,
                            "QvbrSettings": {"QvbrQualityLevel": quality},
                        },
                    },
                },
                "AudioDescriptions": aac_audio,
            }

        job: Dict[str, Any] = {
            "Role": self.settings.mediaconvert_role_arn,
            "UserMetadata": {"AssetId": asset_id},
            "Tags": {"Project": "FilmRoom", "AssetId": asset_id},
            "Settings": {
                "Inputs": [{
                    "FileInput": input_uri,
                    "AudioSelectors": {"Audio Selector 1": {"DefaultSelection": "DEFAULT"}},
                    "VideoSelector": {},
                }],
                "OutputGroups": [
                    {
                        "Name": "File Group",
                        "OutputGroupSettings": {
                            "Type": "FILE_GROUP_SETTINGS",
                            "FileGroupSettings": {"Destination": f"{output_uri}/mp4/"},
                        },
                        "Outputs": [
                            mp4_output("_1080p", 1920, 1080, 5000000, 8),
                            mp4_output("_720p", 1280, 720, 2500000, 7),
                        ],
                    },
                    {
                        "Name": "Thumbnail Group",
                        "OutputGroupSettings": {
                            "Type": "FILE_GROUP_SETTINGS",
                            "FileGroupSettings": {"Destination": f"{output_uri}/thumbnails/"},
                        },
                        "Outputs": [{
                            "NameModifier": "_thumb",
                            "ContainerSettings": {"Container": "RAW"},
                            "VideoDescription": {
                                "Width": 1280,
                                "Height": 720,
                                "CodecSettings": {
                                    "Codec": "FRAME_CAPTURE",
                                    # One frame every 60 seconds
                                    "FrameCaptureSettings": {
                                        "FramerateNumerator": 1,
                                        "FramerateDenominator": 60,
                                        "MaxCaptures": 10,
                                        "Quality": 80,
                                    },
                                },
                            },
                        }],
                    },
                ],
            },
        }
        if self.settings.mediaconvert_job_template:
            job["JobTemplate"] = self.settings.mediaconvert_job_template
        return job

    # =========================================================================
    # TranscodeService
    # =========================================================================

    async def submit(self, asset_id: str, source_location: str) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        source_key = self._source_key(source_location)
        if not is_video_file(source_key):
            raise TranscodeSubmitError(asset_id, f"not a video file: {source_key}")

        job_settings = self.build_job_settings(asset_id, source_key)
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None, lambda: self.client.create_job(**job_settings)
            )
        except (BotoCoreError, ClientError) as e:
            raise TranscodeSubmitError(asset_id, str(e)) from e

        job_id = response["Job"]["Id"]
        logger.info(f"MediaConvert job {job_id} created for asset {asset_id}")
        return job_id

    async def _get_job(self, asset_id: str, job_id: Optional[str]) -> Dict[str, Any]:
        from botocore.exceptions import BotoCoreError, ClientError

        if not job_id:
            raise TranscodeLookupError(asset_id, "no job id recorded")
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None, lambda: self.client.get_job(Id=job_id)
            )
        except (BotoCoreError, ClientError) as e:
            raise TranscodeLookupError(asset_id, str(e)) from e
        return response["Job"]

    async def status(self, asset_id: str, job_id: Optional[str] = None) -> ProcessingState:
        job = await self._get_job(asset_id, job_id)
        raw_status = job.get("Status", "")
        state = _STATUS_MAP.get(raw_status)
        if state is None:
            raise TranscodeLookupError(asset_id, f"unrecognized job status {raw_status!r}")
        return state

    async def failure_reason(self, asset_id: str, job_id: Optional[str] = None) -> Optional[str]:
        job = await self._get_job(asset_id, job_id)
        if job.get("Status") == "CANCELED":
            return "transcode job cancelled"
        return job.get("ErrorMessage") or f"transcode job error {job.get('ErrorCode', '')}".strip()

    async def result(self, asset_id: str, job_id: Optional[str] = None) -> TranscodeResult:
        job = await self._get_job(asset_id, job_id)
        variants: Dict[VariantQuality, str] = {}
        duration_ms: Optional[int] = None

        for group in job.get("OutputGroupDetails", []):
            for output in group.get("OutputDetails", []):
                for file_path in output.get("OutputFilePaths", []):
                    for modifier, quality in _VARIANT_MODIFIERS.items():
                        if modifier in file_path:
                            variants[quality] = file_path
                if output.get("DurationInMs") and duration_ms is None:
                    duration_ms = output["DurationInMs"]

        source_key = self._source_key(job["Settings"]["Inputs"][0]["FileInput"])
        thumbnails = await self._list_thumbnails(asset_id, self.output_prefix(source_key))

        return TranscodeResult(
            variants=variants,
            thumbnails=thumbnails,
            duration_seconds=duration_ms / 1000 if duration_ms else None,
        )

    async def _list_thumbnails(self, asset_id: str, output_prefix: str) -> List[str]:
        from botocore.exceptions import BotoCoreError, ClientError

        prefix = f"{output_prefix}/thumbnails/"
        loop = asyncio.get_running_loop()
        keys: List[str] = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            pages = await loop.run_in_executor(
                None,
                lambda: list(paginator.paginate(Bucket=self.bucket, Prefix=prefix))
            )
        except (BotoCoreError, ClientError) as e:
            raise TranscodeLookupError(asset_id, f"thumbnail listing failed: {e}") from e

        for page in pages:
            for obj in page.get("Contents", []):
                if "_thumb" in obj["Key"]:
                    keys.append(f"s3://{self.bucket}/{obj['Key']}")
        # Frame captures are numbered, so key order is timeline order
        return sorted(keys)
