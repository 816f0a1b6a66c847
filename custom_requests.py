"""
Custom design requests: a shopper sends a reference image with a description,
an admin answers with a quote. Each request carries a short comment thread.
"""
from typing import List, Optional

import structlog
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, now_utc, serialize_doc, to_object_id
from errors import CommentLimitError
from schemas import CustomRequest, CustomRequestComment

logger = structlog.get_logger(__name__)

MAX_COMMENTS_PER_REQUEST = 5


class CustomRequestService:
    collection = "custom_request"
    comments_collection = "custom_request_comment"

    def __init__(self, database: Database):
        self.db = database

    def submit_request(self, customer_email: str, image_url: str, description: str,
                       customer_phone: str = "", customer_name: Optional[str] = None) -> CustomRequest:
        request = CustomRequest(
            customer_email=customer_email,
            customer_phone=customer_phone,
            customer_name=customer_name,
            image_url=image_url,
            description=description,
        )
        request_id = create_document(self.db, self.collection, request)
        logger.info("custom_request_submitted", request_id=request_id, email=customer_email)
        return self.get_request(request_id)

    def get_request(self, request_id: str) -> Optional[CustomRequest]:
        oid = to_object_id(request_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return CustomRequest(**serialize_doc(doc)) if doc else None

    def get_all_requests(self, limit: int = 100, status: Optional[str] = None) -> List[CustomRequest]:
        filt = {"status": status} if status else {}
        cursor = self.db[self.collection].find(filt).sort("created_at", DESCENDING).limit(limit)
        return [CustomRequest(**serialize_doc(d)) for d in cursor]

    def get_my_requests(self, email: str, limit: int = 50) -> List[CustomRequest]:
        cursor = self.db[self.collection].find({"customer_email": email}).sort("created_at", DESCENDING).limit(limit)
        return [CustomRequest(**serialize_doc(d)) for d in cursor]

    def respond_to_request(self, request_id: str, response: str, estimated_price: Optional[float] = None,
                           status: str = "quoted") -> Optional[CustomRequest]:
        oid = to_object_id(request_id)
        if oid is None:
            return None
        updates = {"admin_response": response, "status": status, "updated_at": now_utc()}
        if estimated_price is not None:
            updates["estimated_price"] = estimated_price
        res = self.db[self.collection].update_one({"_id": oid}, {"$set": updates})
        if res.matched_count == 0:
            return None
        return self.get_request(request_id)

    # Comments
    def get_comments(self, request_id: str) -> List[CustomRequestComment]:
        cursor = self.db[self.comments_collection].find({"request_id": request_id}).sort("created_at", ASCENDING)
        return [CustomRequestComment(**serialize_doc(d)) for d in cursor]

    def add_comment(self, request_id: str, customer_email: str, comment_text: str) -> CustomRequestComment:
        count = self.db[self.comments_collection].count_documents({"request_id": request_id})
        if count >= MAX_COMMENTS_PER_REQUEST:
            raise CommentLimitError(f"Maximum {MAX_COMMENTS_PER_REQUEST} comments allowed per request")
        comment = CustomRequestComment(request_id=request_id, customer_email=customer_email,
                                       comment_text=comment_text)
        comment_id = create_document(self.db, self.comments_collection, comment)
        doc = self.db[self.comments_collection].find_one({"_id": to_object_id(comment_id)})
        return CustomRequestComment(**serialize_doc(doc))
