"""elflens — map source lines to the instructions they compiled to.

Disassembles an ELF image, attributes every instruction to its DWARF source
location, writes a fixed-column ``.asm`` listing, and answers "which listing
line belongs to file F, line L" lookups against it.
"""

__version__ = "0.1.0"
