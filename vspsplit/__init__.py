"""vspsplit: virtual subpopulations for forward-time population genetics.

Defines, names, composes and activates virtual subpopulations (VSPs):
slices of a subpopulation selected by sex, affection status, information
field values, proportion, index range or genotype, without moving
individuals in storage.

  - Leaf splitters (vspsplit.splitters): sex, affection, info field,
    proportion, index range, genotype pattern
  - Composite splitters (vspsplit.composite): stacking union, cross product
  - Population storage with per-individual visibility (vspsplit.population)
  - YAML configuration and splitter factory (vspsplit.config)
"""

__version__ = "0.1.0"
