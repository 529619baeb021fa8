from .diligence_record import DiligenceRecord

__all__ = ["DiligenceRecord"]
