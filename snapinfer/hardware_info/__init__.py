"""Discovery of CPU, memory, disk and PCI hardware on the host."""