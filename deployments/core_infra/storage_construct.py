"""
Storage constructs: ECR repositories and the application bucket.

Architecture:
- One ECR repository per app type: {project}-{stage}-backend, {project}-{stage}-frontend
- One S3 bucket for application file storage

Deletion policy: destroy with contents. Tearing down a stage removes its
images and objects. No stage currently retains them.
"""

from typing import Dict, Optional

from aws_cdk import (
    aws_ecr as ecr,
    aws_s3 as s3,
    RemovalPolicy,
)
from constructs import Construct

from .naming import apply_tags


class ContainerRepositoriesConstruct(Construct):
    """
    Construct that creates the backend and frontend ECR repositories.

    Attributes:
        backend_repository: Backend image repository
        frontend_repository: Frontend image repository
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        backend_repository_name: str,
        frontend_repository_name: str,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.backend_repository = self._create_repository('BackendRepo', backend_repository_name)
        self.frontend_repository = self._create_repository('FrontendRepo', frontend_repository_name)

        if tags:
            apply_tags(self, tags)

    def _create_repository(self, construct_id: str, repository_name: str) -> ecr.Repository:
        return ecr.Repository(
            self,
            construct_id,
            repository_name=repository_name,
            removal_policy=RemovalPolicy.DESTROY,
            empty_on_delete=True,
        )


class AppBucketConstruct(Construct):
    """
    Construct that creates the application file bucket.

    Attributes:
        bucket: The S3 bucket
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        bucket_name: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.bucket = s3.Bucket(
            self,
            'Bucket',
            bucket_name=bucket_name,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        if tags:
            apply_tags(self, tags)
