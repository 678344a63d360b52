"""
eb_deploy_kit
-------------

AWS Elastic Beanstalk 용 배포/정리 CLI 패키지.
빌드된 jar 를 S3 에 올리고 애플리케이션/버전/IAM 역할/환경을 순서대로 맞춘 뒤,
cleanup 으로 같은 리소스를 최대한 되돌린다.
"""

__all__ = [
    "config",
    "orchestrator",
]
