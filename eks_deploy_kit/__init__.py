"""
eks_deploy_kit
--------------

ECR 이미지 빌드/푸시 후 Helm 으로 EKS 클러스터에 배포하는 CLI 패키지.
GitHub Actions 워크플로우와 같은 순서(태그 계산 → AWS 인증 → ECR 로그인 →
빌드/푸시 → kubeconfig → helm upgrade --install)를 로컬/CI 어디서나 실행한다.
"""

__version__ = "0.1.0"

__all__ = [
    "chart",
    "config",
    "pipeline",
]
