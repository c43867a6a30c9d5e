from typing import Callable, Optional
from sqlalchemy.orm import Session
from orderhub.domain.models import AnalyticsEvent, OrderAnalytics
from shared.core import get_logger

logger = get_logger(__name__)

CREATION_PATTERNS = ("manual", "text_ai", "image_ai")

class AnalyticsRecorder:
    """Order-creation telemetry. Never raises."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record_order_creation(
        self,
        order_id: int,
        client_id: str,
        user_id: Optional[str],
        creation_pattern: Optional[str],
        courier_service: Optional[str] = None,
    ) -> bool:
        pattern = creation_pattern if creation_pattern in CREATION_PATTERNS else "manual"
        try:
            with self.session_factory() as db:
                db.add(OrderAnalytics(
                    order_id=order_id,
                    client_id=client_id,
                    user_id=user_id,
                    creation_pattern=pattern,
                ))
                db.add(AnalyticsEvent(
                    event_type="create_order",
                    client_id=client_id,
                    user_id=user_id,
                    event_data={
                        "orderId": order_id,
                        "creationPattern": pattern,
                        "courierService": courier_service,
                    },
                ))
                db.commit()
        except Exception:
            logger.warning(
                "Failed to track order analytics",
                exc_info=True,
                extra={'extra_fields': {'order_id': order_id, 'client_id': client_id, 'pattern': pattern}},
            )
            return False
        logger.info(
            "Order analytics tracked",
            extra={'extra_fields': {'order_id': order_id, 'client_id': client_id, 'pattern': pattern}},
        )
        return True
