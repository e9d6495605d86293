# clinic_scheduler/services/actors.py
from __future__ import annotations
from dataclasses import dataclass
import enum


class ActorRole(str, enum.Enum):
    patient = "patient"
    provider = "provider"


@dataclass(frozen=True)
class Actor:
    """Quién invoca la operación (lo resuelve la capa de autenticación externa)."""
    role: ActorRole
    id: int

    @classmethod
    def patient(cls, patient_id: int) -> "Actor":
        return cls(ActorRole.patient, patient_id)

    @classmethod
    def provider(cls, provider_id: int) -> "Actor":
        return cls(ActorRole.provider, provider_id)

    @property
    def is_provider(self) -> bool:
        return self.role == ActorRole.provider

    def owns(self, appointment) -> bool:
        if self.role == ActorRole.patient:
            return appointment.patient_id == self.id
        return appointment.provider_id == self.id
