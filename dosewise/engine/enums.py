from enum import Enum


class MealContext(str, Enum):
    """Semantic tag of a schedule slot; drives absorption-based placement."""
    EMPTY_STOMACH = "empty_stomach"
    WITH_BREAKFAST = "with_breakfast"
    WITH_LUNCH = "with_lunch"
    WITH_DINNER = "with_dinner"
    BETWEEN_MEALS = "between_meals"
    BEDTIME = "bedtime"

    @property
    def display_name(self) -> str:
        return _CONTEXT_DISPLAY_NAMES[self]

    @property
    def short_display_name(self) -> str:
        if self in MEAL_CONTEXTS:
            return "With food"
        return self.display_name

    @property
    def is_meal(self) -> bool:
        return self in MEAL_CONTEXTS


_CONTEXT_DISPLAY_NAMES = {
    MealContext.EMPTY_STOMACH: "Empty stomach",
    MealContext.WITH_BREAKFAST: "With breakfast",
    MealContext.WITH_LUNCH: "With lunch",
    MealContext.WITH_DINNER: "With dinner",
    MealContext.BETWEEN_MEALS: "Between meals",
    MealContext.BEDTIME: "Before bed",
}

# Priority order used when falling back to "any meal"
MEAL_CONTEXTS = (MealContext.WITH_BREAKFAST, MealContext.WITH_LUNCH, MealContext.WITH_DINNER)


class SupplementCategory(str, Enum):
    VITAMIN_FAT_SOLUBLE = "vitamin_fat_soluble"
    VITAMIN_WATER_SOLUBLE = "vitamin_water_soluble"
    MINERAL = "mineral"
    OMEGA = "omega"
    PROBIOTIC = "probiotic"
    HERBAL = "herbal"
    AMINO_ACID = "amino_acid"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "SupplementCategory":
        """Lenient conversion; unknown values map to OTHER."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def display_name(self) -> str:
        return _CATEGORY_DISPLAY_NAMES[self]


_CATEGORY_DISPLAY_NAMES = {
    SupplementCategory.VITAMIN_FAT_SOLUBLE: "Fat-Soluble Vitamin",
    SupplementCategory.VITAMIN_WATER_SOLUBLE: "Water-Soluble Vitamin",
    SupplementCategory.MINERAL: "Mineral",
    SupplementCategory.OMEGA: "Omega/Fish Oil",
    SupplementCategory.PROBIOTIC: "Probiotic",
    SupplementCategory.HERBAL: "Herbal/Adaptogen",
    SupplementCategory.AMINO_ACID: "Amino Acid",
    SupplementCategory.OTHER: "Other",
}


class Goal(str, Enum):
    ENERGY = "energy"
    SLEEP = "sleep"
    IMMUNITY = "immunity"
    BONE_HEALTH = "bone_health"
    HEART_HEALTH = "heart_health"
    SKIN_HAIR_NAILS = "skin_hair_nails"
    ATHLETIC_PERFORMANCE = "athletic_performance"
    STRESS = "stress"
    COGNITIVE = "cognitive"

    @property
    def display_name(self) -> str:
        return _GOAL_DISPLAY_NAMES[self]


_GOAL_DISPLAY_NAMES = {
    Goal.ENERGY: "Better energy",
    Goal.SLEEP: "Improved sleep",
    Goal.IMMUNITY: "Immune support",
    Goal.BONE_HEALTH: "Bone health",
    Goal.HEART_HEALTH: "Heart health",
    Goal.SKIN_HAIR_NAILS: "Skin/hair/nails",
    Goal.ATHLETIC_PERFORMANCE: "Athletic performance",
    Goal.STRESS: "Stress management",
    Goal.COGNITIVE: "Cognitive function",
}


class SupplementForm(str, Enum):
    CAPSULE = "capsule"
    TABLET = "tablet"
    SOFTGEL = "softgel"
    GUMMY = "gummy"
    POWDER = "powder"
    LIQUID = "liquid"
    OTHER = "other"
