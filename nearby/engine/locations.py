from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class LocationPreset:
    key: str
    label: str
    lat: float
    lng: float
    tags: List[str] = field(default_factory=list)


LOCATION_PRESETS: List[LocationPreset] = [
    LocationPreset("shibuya", "渋谷", 35.6595, 139.7005, ["にぎやか", "20代", "カジュアル"]),
    LocationPreset("ebisu", "恵比寿", 35.6467, 139.7101, ["ワイン", "大人", "落ち着き"]),
    LocationPreset("shinjuku", "新宿", 35.6906, 139.7006, ["多国籍", "にぎやか"]),
    LocationPreset("roppongi", "六本木", 35.6629, 139.731, ["ハイエンド", "外国人歓迎"]),
    LocationPreset("ginza", "銀座", 35.6721, 139.7706, ["大人", "ラグジュアリー"]),
    LocationPreset("nakameguro", "中目黒", 35.6437, 139.6993, ["カフェ", "ゆったり"]),
    LocationPreset("kichijoji", "吉祥寺", 35.7033, 139.5795, ["公園", "ナチュラル"]),
    LocationPreset("yokohama", "横浜", 35.4437, 139.638, ["港町", "デート"]),
    LocationPreset("ikebukuro", "池袋", 35.7289, 139.71, ["学生", "にぎやか"]),
    LocationPreset("umeda", "大阪・梅田", 34.7055, 135.4983, ["関西", "ビジネス"]),
    LocationPreset("kyoto", "京都・河原町", 35.0037, 135.7681, ["旅行", "落ち着き"]),
    LocationPreset("fukuoka", "福岡・天神", 33.5902, 130.4017, ["屋台", "にぎやか"]),
    LocationPreset("sapporo", "札幌・すすきの", 43.0555, 141.3564, ["北海道", "ゆったり"]),
]


def find_preset(term: str) -> Optional[LocationPreset]:
    """First preset whose key or label contains term (case-insensitive)."""
    normalized = term.strip().lower()
    if not normalized:
        return None
    for preset in LOCATION_PRESETS:
        if normalized in preset.key.lower() or normalized in preset.label.lower():
            return preset
    return None


def get_preset(key: str) -> Optional[LocationPreset]:
    return next((p for p in LOCATION_PRESETS if p.key == key), None)
