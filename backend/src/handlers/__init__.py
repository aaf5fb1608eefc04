"""HTTP and WebSocket handlers for the maintenance request tracker."""
