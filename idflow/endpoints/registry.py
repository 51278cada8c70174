"""
Endpoint Registry for the simulated execution backend.

The registry maps endpoint paths to handler functions that stand in for
the remote verification services. Handlers receive the request payload and
return the response data.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
import functools
import logging


logger = logging.getLogger(__name__)


@dataclass
class EndpointHandler:
    """
    A registered endpoint.
    
    Attributes:
        path: Endpoint path, e.g. /jdmscan/liveness
        func: Handler called with the request payload
        description: Human-readable description
    """
    path: str
    func: Callable[[Dict[str, Any]], Any]
    description: str = ""
    
    def __call__(self, payload: Dict[str, Any]) -> Any:
        """Call the handler function."""
        return self.func(payload)
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize endpoint metadata."""
        return {
            "path": self.path,
            "description": self.description,
        }


class EndpointRegistry:
    """
    Registry of simulated endpoints.
    
    Usage:
        registry = EndpointRegistry()
        
        @registry.register("/jdmscan/liveness")
        def liveness(payload: dict) -> dict:
            return {"livenessScore": 0.95}
        
        # Later
        handler = registry.get("/jdmscan/liveness")
        data = handler({"token": "..."})
    """
    
    def __init__(self):
        self._endpoints: Dict[str, EndpointHandler] = {}
    
    def register(self, *paths: str, description: str = "") -> Callable:
        """
        Decorator to register a function for one or more endpoint paths.
        
        Args:
            *paths: Endpoint paths served by the function
            description: Endpoint description (defaults to docstring)
            
        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            desc = (description or func.__doc__ or "").strip()
            for path in paths:
                self._endpoints[path] = EndpointHandler(path=path, func=func, description=desc)
                logger.debug(f"Registered endpoint: {path}")
            
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                return func(*args, **kwargs)
            
            return wrapper
        
        return decorator
    
    def get(self, path: str) -> Optional[EndpointHandler]:
        """Get an endpoint handler by path."""
        return self._endpoints.get(path)
    
    def list_endpoints(self) -> List[Dict[str, Any]]:
        """List all registered endpoints with their metadata."""
        return [handler.to_dict() for handler in self._endpoints.values()]
    
    def __contains__(self, path: str) -> bool:
        return path in self._endpoints
    
    def __len__(self) -> int:
        return len(self._endpoints)


# Global endpoint registry instance
endpoint_registry = EndpointRegistry()


def register_endpoint(*paths: str, description: str = "") -> Callable:
    """Convenience decorator to register an endpoint in the global registry."""
    return endpoint_registry.register(*paths, description=description)
