from datetime import datetime
from typing import Optional, Dict, Any


class BaseModel:
    # Fields parsed from ISO strings on load
    DATETIME_FIELDS = ('created_at', 'updated_at')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseModel':
        if not data:
            return None

        instance = cls()
        for key, value in data.items():
            if not hasattr(instance, key):
                continue

            if key in cls.DATETIME_FIELDS and value and isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value.replace('Z', "+00:00"))
                except ValueError:
                    pass

            setattr(instance, key, value)

        return instance

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for attr_name, attr_value in self.__dict__.items():
            if attr_name.startswith('_'):
                continue

            # Convert datetime to ISO string
            if isinstance(attr_value, datetime):
                attr_value = attr_value.isoformat()

            result[attr_name] = attr_value

        return result

    @staticmethod
    def format_datetime(dt: Optional[datetime]) -> Optional[str]:
        if not dt:
            return None
        return dt.isoformat()
