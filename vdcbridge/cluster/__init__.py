from .client import ClusterClient, ClusterCache, build_cluster_client, translate_api_exception

__all__ = ["ClusterClient", "ClusterCache", "build_cluster_client", "translate_api_exception"]
