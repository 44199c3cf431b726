"""
Repositories for the read-mostly catalogs: partners, facilities and the
waste stream defaults table.

The engine only reads these; the upserts exist for ``seed-catalog`` and
test setup.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository, dump_json, load_json
from waste_planner.models.catalog import Facility, Partner, WasteStreamEntry
from waste_planner.taxonomy.waste_taxonomy import QuantityUnit

logger = logging.getLogger(__name__)


class PartnerRepository(BaseRepository):
    """Read/write access to the ``partners`` table."""

    def upsert(self, partner: Partner) -> None:
        self.execute(
            """
            INSERT INTO partners (partner_id, name, regions) VALUES (?, ?, ?)
            ON CONFLICT(partner_id) DO UPDATE SET
                name    = excluded.name,
                regions = excluded.regions;
            """,
            (partner.partner_id, partner.name, dump_json(partner.regions)),
        )

    def get(self, partner_id: str) -> Optional[Partner]:
        row = self.fetchone("SELECT * FROM partners WHERE partner_id = ?;", (partner_id,))
        if row is None:
            return None
        return Partner(
            partner_id=row["partner_id"],
            name=row["name"],
            regions=load_json(row["regions"], []),
        )


class FacilityRepository(BaseRepository):
    """Read/write access to the ``facilities`` table."""

    def upsert(self, facility: Facility) -> None:
        self.execute(
            """
            INSERT INTO facilities (
                facility_id, partner_id, name, region, address, lat, lng, accepted_streams,
                cost_per_tonne, carbon_kg_co2e_per_tonne, diversion_rating
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(facility_id) DO UPDATE SET
                partner_id       = excluded.partner_id,
                name             = excluded.name,
                region           = excluded.region,
                address          = excluded.address,
                lat              = excluded.lat,
                lng              = excluded.lng,
                accepted_streams = excluded.accepted_streams,
                cost_per_tonne   = excluded.cost_per_tonne,
                carbon_kg_co2e_per_tonne = excluded.carbon_kg_co2e_per_tonne,
                diversion_rating = excluded.diversion_rating;
            """,
            (
                facility.facility_id,
                facility.partner_id,
                facility.name,
                facility.region,
                facility.address,
                facility.lat,
                facility.lng,
                dump_json(facility.accepted_streams),
                facility.cost_per_tonne,
                facility.carbon_kg_co2e_per_tonne,
                facility.diversion_rating,
            ),
        )

    def get(self, facility_id: str) -> Optional[Facility]:
        row = self.fetchone(
            "SELECT * FROM facilities WHERE facility_id = ?;", (facility_id,)
        )
        return _row_to_facility(row) if row else None

    def list_all(self) -> list[Facility]:
        rows = self.fetchall("SELECT * FROM facilities ORDER BY name, facility_id;")
        return [_row_to_facility(r) for r in rows]

    def list_for_partner(
        self, partner_id: str, region: Optional[str] = None
    ) -> list[Facility]:
        """Facilities run by ``partner_id``, optionally restricted to ``region``."""
        if region:
            rows = self.fetchall(
                "SELECT * FROM facilities WHERE partner_id = ? AND region = ? ORDER BY name;",
                (partner_id, region),
            )
        else:
            rows = self.fetchall(
                "SELECT * FROM facilities WHERE partner_id = ? ORDER BY name;",
                (partner_id,),
            )
        return [_row_to_facility(r) for r in rows]


class WasteStreamRepository(BaseRepository):
    """Read/write access to the ``waste_streams`` defaults table."""

    def upsert(self, entry: WasteStreamEntry) -> None:
        self.execute(
            """
            INSERT INTO waste_streams (
                stream_name, default_density_kg_m3, default_kg_per_m, default_unit,
                is_active, updated_at
            ) VALUES (?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(stream_name) DO UPDATE SET
                default_density_kg_m3 = excluded.default_density_kg_m3,
                default_kg_per_m      = excluded.default_kg_per_m,
                default_unit          = excluded.default_unit,
                is_active             = excluded.is_active,
                updated_at            = excluded.updated_at;
            """,
            (
                entry.stream_name,
                entry.default_density_kg_m3,
                entry.default_kg_per_m,
                entry.default_unit.value if entry.default_unit else None,
                int(entry.is_active),
            ),
        )

    def get(self, stream_name: str) -> Optional[WasteStreamEntry]:
        row = self.fetchone(
            "SELECT * FROM waste_streams WHERE stream_name = ? AND is_active = 1;",
            (stream_name.strip(),),
        )
        if row is None:
            return None
        return WasteStreamEntry(
            stream_name=row["stream_name"],
            default_density_kg_m3=row["default_density_kg_m3"],
            default_kg_per_m=row["default_kg_per_m"],
            default_unit=QuantityUnit(row["default_unit"]) if row["default_unit"] else None,
            is_active=bool(row["is_active"]),
        )

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM waste_streams;")
        return int(row["n"]) if row else 0


def _row_to_facility(row: sqlite3.Row) -> Facility:
    return Facility(
        facility_id=row["facility_id"],
        partner_id=row["partner_id"],
        name=row["name"],
        region=row["region"],
        address=row["address"],
        lat=row["lat"],
        lng=row["lng"],
        accepted_streams=load_json(row["accepted_streams"], []),
        cost_per_tonne=row["cost_per_tonne"],
        carbon_kg_co2e_per_tonne=row["carbon_kg_co2e_per_tonne"],
        diversion_rating=row["diversion_rating"],
    )
